# filevault/security/auth.py
import logging
from dataclasses import dataclass
from typing import NoReturn, Optional

import jwt  # PyJWT
from fastapi import Depends, Header, HTTPException

from ..config import Settings
from ..deps import get_settings

logger = logging.getLogger(__name__)


@dataclass
class AuthPrincipal:
    """User identified by a token from the external auth provider."""
    id: str
    email: Optional[str] = None
    issuer: Optional[str] = None
    role: Optional[str] = None


def _unauth(detail: str) -> NoReturn:
    logger.warning("Auth failed: %s", detail)
    raise HTTPException(
        status_code=401,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str, settings: Settings) -> dict:
    """Verify signature, expiry, audience and (when configured) issuer."""
    return jwt.decode(
        token,
        settings.jwt_signing_key,
        algorithms=[settings.jwt_alg],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        leeway=30,
        options={"require": ["exp", "iat", "sub"]},
    )


def require_user(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> AuthPrincipal:
    """Validate a Bearer JWT and return the owning user."""
    if not settings.jwt_signing_key:
        _unauth("JWT_SIGNING_KEY not configured")
    if not authorization:
        _unauth("Missing Authorization header")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        _unauth("Malformed Authorization header")

    try:
        payload = decode_token(parts[1], settings)
    except jwt.ExpiredSignatureError:
        _unauth("Token expired")
    except jwt.InvalidAudienceError:
        _unauth("Bad audience")
    except jwt.InvalidIssuerError:
        _unauth("Bad issuer")
    except jwt.InvalidSignatureError:
        _unauth("Bad signature")
    except jwt.PyJWTError as e:
        _unauth(f"JWT error: {e}")

    sub = str(payload["sub"]).strip()
    if not sub:
        _unauth("Empty subject")
    return AuthPrincipal(
        id=sub,
        email=payload.get("email"),
        issuer=payload.get("iss"),
        role=payload.get("role"),
    )


__all__ = ["AuthPrincipal", "decode_token", "require_user"]
