"""Change events and the nesting-aware update coalescer.

Mutations of a sequence (or of an annotation) emit a :class:`.ChangeEvent`.
While a transaction is open (``begin_update`` / ``end_update``) those events are
collapsed into one pending event, which is delivered to the listeners when the
outermost transaction closes.
"""

import threading
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Iterator, Optional, Tuple

from loguru import logger

from bioseq.exceptions import TransactionError


class EventKind(Enum):
    DATA = "data"
    """Plane content or sequence structure changed"""
    TYPE = "type"
    """X/Y/C/data type of the sequence changed"""
    PROPERTY = "property"
    """A named property changed, see ``ChangeEvent.property_name``"""
    COLORMAP = "colormap"
    ROI = "roi"
    """A ROI was attached to or detached from the sequence"""
    OVERLAY = "overlay"
    """An overlay was attached to or detached from the sequence"""
    CONTENT = "content"
    """Geometry / painting content of an annotation changed"""
    FOCUS = "focus"
    SELECTION = "selection"


# kinds for which the property name is part of the event identity
_NAMED_KINDS = (EventKind.PROPERTY, EventKind.CONTENT)


class ChangeEvent:
    """
    A single (possibly collapsed) change notification.

    Two events are equal, and therefore mergeable, when they come from the same
    source with the same kind and, for property events, the same property name.

    Attributes:
        source: Object that emitted the event
        kind: :class:`.EventKind` of the change
        property_name: Name of the changed property (property / content events)
        target: Object the change is about (a (t, z) key, a ROI, ...). Becomes
            ``None`` when events about different targets were collapsed.
    """

    __slots__ = ("source", "kind", "property_name", "target")

    def __init__(
        self,
        source: Any,
        kind: EventKind,
        property_name: Optional[str] = None,
        target: Any = None,
    ):
        self.source = source
        self.kind = kind
        self.property_name = property_name
        self.target = target

    def collapse(self, other: "ChangeEvent") -> bool:
        """Merge ``other`` into this event.

        Returns:
            True if ``other`` was merged, False if the events are not mergeable
        """
        if self != other:
            return False
        if other.target != self.target:
            self.target = None
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChangeEvent):
            return NotImplemented
        if other.source is not self.source or other.kind is not self.kind:
            return False
        if self.kind in _NAMED_KINDS:
            return self.property_name == other.property_name
        return True

    def __hash__(self) -> int:
        key = (id(self.source), self.kind)
        if self.kind in _NAMED_KINDS:
            key += (self.property_name,)
        return hash(key)

    def __repr__(self) -> str:
        name = f", property_name={self.property_name!r}" if self.property_name else ""
        return f"ChangeEvent({self.kind.name}{name}, target={self.target!r})"


Listener = Callable[[ChangeEvent], None]


class ListenerList:
    """Registered listeners, notified over an immutable snapshot."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: Tuple[Listener, ...] = ()

    def add(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners = self._listeners + (listener,)

    def remove(self, listener: Listener) -> None:
        with self._lock:
            self._listeners = tuple(
                registered for registered in self._listeners if registered != listener
            )

    def fire(self, event: ChangeEvent) -> None:
        # listeners may register / unregister during delivery
        with self._lock:
            snapshot = self._listeners
        for listener in snapshot:
            listener(event)

    def __len__(self) -> int:
        return len(self._listeners)


class UpdateCoalescer:
    """
    Per-object transaction state: a nesting depth and one pending event.

    ``begin_update`` increments the depth, ``end_update`` decrements it and
    delivers the pending event once the outermost transaction is closed.
    Events reported with :meth:`.changed` outside of a transaction are
    delivered immediately.

    Args:
        deliver: Called with each event that has to be delivered. It runs on the
            thread that closes the outermost transaction, outside of the lock.
        lock: Lock guarding the depth / pending state. Pass the owner's lock
            to share one serialization primitive with it.
    """

    def __init__(self, deliver: Listener, lock: Optional[threading.RLock] = None):
        self._deliver = deliver
        self._lock = lock if lock is not None else threading.RLock()
        self._depth = 0
        self._pending: Optional[ChangeEvent] = None

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def is_updating(self) -> bool:
        return self._depth > 0

    @property
    def pending(self) -> Optional[ChangeEvent]:
        return self._pending

    def begin_update(self) -> None:
        with self._lock:
            self._depth += 1

    def end_update(self) -> None:
        """Close one transaction level.

        Raises:
            TransactionError: if there is no open transaction
        """
        with self._lock:
            if self._depth == 0:
                raise TransactionError("end_update() called without matching begin_update()")
            self._depth -= 1
            if self._depth > 0:
                return
            event, self._pending = self._pending, None

        if event is not None:
            self._deliver(event)

    @contextmanager
    def updating(self) -> Iterator["UpdateCoalescer"]:
        """Context manager wrapping ``begin_update`` / ``end_update``."""
        self.begin_update()
        try:
            yield self
        finally:
            self.end_update()

    def changed(self, event: ChangeEvent) -> None:
        """Report a change, delivering or coalescing it depending on the depth."""
        flushed = None
        with self._lock:
            if self._depth == 0:
                flushed = event
            elif self._pending is None:
                self._pending = event
            elif not self._pending.collapse(event):
                logger.trace(f"Flushing {self._pending!r} before storing {event!r}")
                flushed, self._pending = self._pending, event

        if flushed is not None:
            self._deliver(flushed)
