# mafianight/domain/identity.py
from __future__ import annotations

import hashlib
import hmac
from typing import Optional
from pydantic import BaseModel, Field

from mafianight.domain.errors import AuthRequired, InvalidToken


class Identity(BaseModel):
    """Who is calling. Issued by the external identity provider, never read from globals."""
    user_id: str = Field(min_length=1, max_length=128)
    display_name: str = Field(min_length=1, max_length=40)


def require_identity(identity: Optional[Identity]) -> Identity:
    if identity is None:
        raise AuthRequired()
    return identity


# -------------------------
# Signed user tokens
# -------------------------
# The identity provider and this server share AUTH_SECRET; a token is the
# HMAC-SHA256 of the user id, so a client cannot claim someone else's id.

def sign_user_id(user_id: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), user_id.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_token(user_id: str, token: Optional[str], secret: str) -> bool:
    if not token:
        return False
    return hmac.compare_digest(sign_user_id(user_id, secret), token)


def authenticate(*, user_id: str, display_name: str, token: Optional[str], secret: str) -> Identity:
    if not verify_token(user_id, token, secret):
        raise InvalidToken()
    return Identity(user_id=user_id, display_name=display_name)
