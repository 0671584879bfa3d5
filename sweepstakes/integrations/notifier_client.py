import httpx

from sweepstakes.core.config import settings


class NotifierError(Exception):
    pass


class NotifierClient:
    """
    Thin client for the outbound email/WhatsApp gateway. Delivery itself
    happens on the other side; we only hand over one message per call.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url if base_url is not None else settings.NOTIFIER_URL
        self.token = token if token is not None else settings.NOTIFIER_TOKEN
        self.timeout = settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def send(
        self,
        *,
        channel: str,
        recipient: str,
        subject: str | None,
        content: str,
        template_key: str,
        reference: str,
    ) -> dict:
        payload = {
            "channel": channel,
            "to": recipient,
            "subject": subject or "",
            "body": content,
            "template_key": template_key,
            "reference": reference,
        }
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.post(self.base_url, json=payload, headers=headers)

        if r.status_code >= 300:
            raise NotifierError(f"Notifier error {r.status_code}: {r.text[:200]}")

        return r.json() if r.content else {}
