"""
staffquest.errors — Progression Error Taxonomy
================================================

Every failure the engine surfaces to a collaborator is one of four
:class:`ProgressionError` subclasses:

* :class:`InvalidArgument` — rejected before any mutation.
* :class:`NotFound` — read projection on an unknown user.
* :class:`Conflict` — per-user contention (lock wait or optimistic
  retries exhausted).  Retryable.
* :class:`StorageUnavailable` — the store or ledger timed out or dropped
  the connection.  Retryable with backoff.

Collaborators render ``user_message``; ``to_dict()`` is the API body.
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Please try again."


class ProgressionError(Exception):
    """Base class for all engine errors."""

    code = "progression_error"
    retryable = False
    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.operation = operation
        self.context = context or {}
        self.user_message = user_message or (RETRY_MESSAGE if self.retryable else message)

        logger.log(
            self.log_level,
            "%s: %s (user=%s op=%s)",
            type(self).__name__, message, user_id, operation,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses."""
        return {
            "error": self.code,
            "message": self.user_message,
            "retryable": self.retryable,
        }


class InvalidArgument(ProgressionError):
    """Bad amount, unknown action type, unknown badge code, naive timestamp…"""

    code = "invalid_argument"
    log_level = logging.INFO


class NotFound(ProgressionError):
    """Read-only projection requested for a user with no stats row."""

    code = "not_found"
    log_level = logging.INFO


class Conflict(ProgressionError):
    """Concurrent writers for one user could not be serialized in time."""

    code = "conflict"
    retryable = True
    log_level = logging.WARNING


class StorageUnavailable(ProgressionError):
    """Store / ledger timed out or is unreachable."""

    code = "storage_unavailable"
    retryable = True
