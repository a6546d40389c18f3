"""
staffquest.engine.locks — Per-User Serialization Boundary
===========================================================

Every read-modify-write cycle on one user's stats runs while holding that
user's lock, so concurrent request handlers and webhook workers in this
process never interleave on the same key.  Different users never block
each other.

Cross-process writers are covered separately by the optimistic
``UserStats.version`` check.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock

from staffquest.errors import Conflict

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 5.0


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = Lock()
        self.holders = 0  # threads holding or waiting


class UserLockRegistry:
    """Reference-counted map of ``user_id → Lock``.

    Thread-safe.  Entries are dropped as soon as no thread holds or waits
    on them, so the map only ever contains users with in-flight writes.
    """

    def __init__(self) -> None:
        self._guard = Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, user_id: str, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[None]:
        """Hold *user_id*'s lock for the duration of the block.

        Raises :class:`~staffquest.errors.Conflict` if the lock is not
        acquired within *timeout* seconds.
        """
        with self._guard:
            entry = self._entries.get(user_id)
            if entry is None:
                entry = self._entries[user_id] = _Entry()
            entry.holders += 1

        acquired = False
        try:
            acquired = entry.lock.acquire(timeout=timeout)
            if not acquired:
                raise Conflict(
                    f"Timed out after {timeout:.1f}s waiting for user lock",
                    user_id=user_id,
                    operation="lock",
                )
            yield
        finally:
            if acquired:
                entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[user_id]

    @property
    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)


# Module-level default instance (tests can inject their own)
_default_registry = UserLockRegistry()


def get_default_registry() -> UserLockRegistry:
    """Return the process-wide registry shared by every engine instance."""
    return _default_registry
