"""Bearer token helpers.

Tokens are issued by the marketplace's identity service; the relay only needs
to read the `sub` claim and, for event intake, the `scope` claim.
`create_access_token` exists for tooling and tests.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from clearlot_relay.core.settings import settings


class InvalidTokenError(ValueError):
    """The bearer token is malformed, expired or has no subject."""


def create_access_token(subject: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create a signed JWT whose subject is the user id."""
    to_encode: dict[str, object] = {"sub": subject}
    if extra_claims:
        to_encode.update(extra_claims)
    to_encode["exp"] = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    encoded_jwt: str = jwt.encode(to_encode, settings.secret_key, algorithm=settings.jwt_algorithm)
    return encoded_jwt


def decode_claims(token: str) -> dict[str, Any]:
    """Verify `token` and return its claims."""
    try:
        payload: dict[str, Any] = jwt.decode(
            token, settings.secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as err:
        raise InvalidTokenError("Could not validate credentials") from err
    return payload


def subject_of(payload: dict[str, Any]) -> str:
    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise InvalidTokenError("Token has no subject")
    return subject


def decode_subject(token: str) -> str:
    """Return the user id carried by `token`."""
    return subject_of(decode_claims(token))


def has_scope(payload: dict[str, Any], scope: str) -> bool:
    """Whether the space-separated `scope` claim grants `scope`."""
    granted = payload.get("scope")
    return isinstance(granted, str) and scope in granted.split()
