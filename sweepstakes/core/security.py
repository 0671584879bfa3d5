from __future__ import annotations

import secrets

import bcrypt

from sweepstakes.core.config import settings


# -------------------------
# Seller access tokens (bcrypt)
# -------------------------
def new_token() -> str:
    return secrets.token_urlsafe(24)


def hash_token(token: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.TOKEN_HASH_ROUNDS)
    hashed = bcrypt.hashpw(token.strip().encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_token(token: str, token_hash: str) -> bool:
    try:
        return bcrypt.checkpw(token.strip().encode("utf-8"), token_hash.encode("utf-8"))
    except Exception:
        return False
