"""Shared API dependencies for authentication and service access."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clearlot_relay.core.security import (
    InvalidTokenError,
    decode_claims,
    decode_subject,
    has_scope,
    subject_of,
)
from clearlot_relay.core.settings import settings
from clearlot_relay.services.runtime import RelayServices, get_services

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Get the authenticated user id from the bearer token.

    Args:
        credentials: HTTP Bearer token credentials

    Returns:
        The token subject, used as the marketplace user id

    Raises:
        HTTPException: If the token is invalid or carries no subject
    """
    try:
        return decode_subject(credentials.credentials)
    except InvalidTokenError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err


def get_service_caller(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Get the calling marketplace service from a scoped bearer token.

    User tokens authenticate but lack the event scope, so they are refused
    with 403.
    """
    try:
        claims = decode_claims(credentials.credentials)
        caller = subject_of(claims)
    except InvalidTokenError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err
    if not has_scope(claims, settings.event_scope):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Token is not allowed to submit events",
        )
    return caller


def get_relay_services() -> RelayServices:
    """Return the process-wide relay components."""
    return get_services()


# Type aliases for dependency injection
CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
ServiceCallerDep = Annotated[str, Depends(get_service_caller)]
ServicesDep = Annotated[RelayServices, Depends(get_relay_services)]
