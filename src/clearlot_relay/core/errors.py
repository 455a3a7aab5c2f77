"""Error taxonomy shared by the relay services."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class RelayError(RuntimeError):
    """Base exception for relay failures surfaced to callers."""


class NotFoundError(RelayError):
    """A referenced conversation, message, purchase or user does not exist."""


class PermissionDeniedError(RelayError):
    """The acting identity is not the owner or a participant of the resource."""


class TransientStoreError(RelayError):
    """The backing store call failed; the caller may retry."""


class InvalidStateError(RelayError):
    """The resource is not in the state the operation requires."""


@contextmanager
def store_errors(db: Session, operation: str) -> Iterator[Session]:
    """Run a unit of work, translating store failures into `TransientStoreError`.

    The session is rolled back before the error propagates so the caller can
    retry from the same state.
    """
    try:
        yield db
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Store failure during %s: %s", operation, exc)
        raise TransientStoreError(f"{operation} failed: store unavailable") from exc
