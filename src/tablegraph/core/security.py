"""
Bearer token handling.

User accounts live outside this service; the engine only needs to know which
user id is acting. Tokens are HS256 JWTs whose ``sub`` claim is that id.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel

from tablegraph.core.config import Settings, settings as default_settings

ALGORITHM = "HS256"


class TokenPayload(BaseModel):
    """JWT token payload model."""

    sub: str
    exp: datetime
    iat: datetime
    jti: str | None = None


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    extra_claims: dict[str, Any] | None = None,
    settings: Settings | None = None,
) -> str:
    """
    Create a signed access token for ``subject``.

    Args:
        subject: User ID the token is issued for
        expires_delta: Custom lifetime (defaults to the configured one)
        extra_claims: Additional claims to include
        settings: Settings providing the signing key

    Returns:
        Encoded JWT token
    """
    settings = settings or default_settings
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))

    claims: dict[str, Any] = {
        "sub": str(subject),
        "exp": expire,
        "iat": now,
        "jti": secrets.token_urlsafe(16),
    }
    if extra_claims:
        claims.update(extra_claims)

    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str, settings: Settings | None = None) -> TokenPayload | None:
    """
    Decode and validate a JWT token.

    Returns:
        TokenPayload if the signature and expiry check out, None otherwise
    """
    settings = settings or default_settings
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None

    subject = payload.get("sub")
    if not subject:
        return None

    return TokenPayload(
        sub=subject,
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        jti=payload.get("jti"),
    )
