import httpx

from sweepstakes.core.config import settings


class DocumentValidationError(Exception):
    pass


class DocumentValidationClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url if base_url is not None else settings.DOCUMENT_VALIDATION_URL
        self.token = token if token is not None else settings.DOCUMENT_VALIDATION_TOKEN
        self.timeout = settings.HTTP_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    async def validate(
        self,
        *,
        document_number: str,
        full_name: str,
        document_front_ref: str | None,
        document_back_ref: str | None,
        invoice_ref: str | None,
    ) -> tuple[bool, str]:
        """
        Returns (is_valid, notes). The verdict is advisory; the caller
        stores it next to the purchase and a human still decides.
        """
        payload = {
            "document_number": document_number,
            "full_name": full_name,
            "document_front": document_front_ref or "",
            "document_back": document_back_ref or "",
            "invoice": invoice_ref or "",
        }
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.post(self.base_url, json=payload, headers=headers)

        if r.status_code != 200:
            raise DocumentValidationError(f"Document validation error {r.status_code}: {r.text[:200]}")

        data = r.json()
        if "is_valid" not in data:
            raise DocumentValidationError("Document validation response without is_valid")

        return bool(data["is_valid"]), str(data.get("notes") or "")
