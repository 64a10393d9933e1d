"""Bearer token verification — identifies the shopper behind a visit, if logged in."""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import uuid
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.settings import settings

# ---- JWT (minimal, no PyJWT dependency) ----

_JWT_ALGO = "HS256"
_ACCESS_TTL = 3600 * 24 * 7  # 7 days


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _b64url_decode(s: str) -> bytes:
    s += "=" * (-len(s) % 4)
    return base64.urlsafe_b64decode(s)


def _secret() -> bytes:
    return settings.JWT_SECRET.encode()


def _sign(payload: dict) -> str:
    header = _b64url(json.dumps({"alg": _JWT_ALGO, "typ": "JWT"}).encode())
    body = _b64url(json.dumps(payload).encode())
    sig_input = f"{header}.{body}".encode()
    sig = hmac.new(_secret(), sig_input, hashlib.sha256).digest()
    return f"{header}.{body}.{_b64url(sig)}"


def _verify(token: str) -> Optional[dict]:
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return None
        sig_input = f"{parts[0]}.{parts[1]}".encode()
        expected = hmac.new(_secret(), sig_input, hashlib.sha256).digest()
        actual = _b64url_decode(parts[2])
        if not hmac.compare_digest(expected, actual):
            return None
        payload = json.loads(_b64url_decode(parts[1]))
        if payload.get("exp", 0) < time.time():
            return None
        return payload
    except Exception:
        return None


def create_access_token(user_id: str, ttl: int = _ACCESS_TTL) -> str:
    """Issue an access token (the storefront's auth provider does this in prod)."""
    now = int(time.time())
    return _sign({"sub": user_id, "iat": now, "exp": now + ttl, "type": "access", "jti": uuid.uuid4().hex[:8]})


def user_id_from_token(token: str) -> Optional[str]:
    payload = _verify(token)
    if not payload or payload.get("type") != "access":
        return None
    return payload.get("sub")


# ---- FastAPI dependency ----

_bearer = HTTPBearer(auto_error=False)


async def get_current_user_id(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[str]:
    """Logged-in user's id, or None for anonymous / invalid tokens."""
    if not creds:
        return None
    return user_id_from_token(creds.credentials)
