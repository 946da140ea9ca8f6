"""Annotation identifier allocation."""

import threading


class IdAllocator:
    """
    Hands out increasing integer identifiers.

    Each sequence owns one, so identifiers are deterministic for a given
    sequence of calls and no process wide counter is needed.
    """

    def __init__(self, start: int = 1):
        self._lock = threading.Lock()
        self._next = start

    def next_id(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def reserve(self, existing_id: int) -> None:
        """Make sure ``existing_id`` (e.g. loaded from a saved representation)
        is never handed out again."""
        with self._lock:
            if self._next <= existing_id:
                self._next = existing_id + 1

    @property
    def peek(self) -> int:
        """Identifier the next call to :meth:`next_id` will return"""
        return self._next
