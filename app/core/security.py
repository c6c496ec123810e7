from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
import secrets
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.settings import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Throwaway hash verified against when the account does not exist.
_DUMMY_HASH = pwd_context.hash(secrets.token_urlsafe(16))

ACCESS_TOKEN_TYPE = "access"
INVITE_TOKEN_TYPE = "invite"


class JWTKeyError(RuntimeError):
    pass


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def constant_time_verify(user_password_hash: str | None, password: str) -> bool:
    """Verify a login so that unknown accounts cost the same bcrypt round as known ones."""
    if not user_password_hash:
        verify_password(password, _DUMMY_HASH)
        return False
    return verify_password(password, user_password_hash)


def _resolve_key(inline: str | None, path: str | None, label: str) -> str:
    if inline:
        return inline
    if path:
        return Path(path).read_text(encoding="utf-8")
    raise JWTKeyError(f"JWT {label} key not configured")


@lru_cache(maxsize=1)
def _load_private_key() -> str:
    return _resolve_key(settings.jwt_private_key, settings.jwt_private_key_path, "private")


@lru_cache(maxsize=1)
def _load_public_key() -> str:
    return _resolve_key(settings.jwt_public_key, settings.jwt_public_key_path, "public")


def access_token_ttl_seconds() -> int:
    return settings.access_token_expire_minutes * 60


def invite_token_ttl_seconds() -> int:
    return settings.invite_token_expire_hours * 3600


def _encode_token(subject: str, token_type: str, lifetime: timedelta, token_version: int | None) -> str:
    issued_at = datetime.now(timezone.utc)
    claims: dict[str, Any] = {
        "sub": subject,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    if token_version is not None:
        claims["tv"] = token_version
    return jwt.encode(claims, _load_private_key(), algorithm=settings.jwt_algorithm)


def create_access_token(
    subject: str, expires_delta: timedelta | None = None, token_version: int | None = None
) -> str:
    lifetime = expires_delta or timedelta(seconds=access_token_ttl_seconds())
    return _encode_token(subject, ACCESS_TOKEN_TYPE, lifetime, token_version)


def create_invite_token(subject: str, token_version: int) -> str:
    """Single-use password setup token; accepting it bumps ``token_version``."""
    return _encode_token(
        subject, INVITE_TOKEN_TYPE, timedelta(seconds=invite_token_ttl_seconds()), token_version
    )


def decode_token(token: str, expected_type: str | None = None) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, _load_public_key(), algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if expected_type and payload.get("type") != expected_type:
        raise ValueError(f"Unexpected token type: {payload.get('type')}")
    return payload
