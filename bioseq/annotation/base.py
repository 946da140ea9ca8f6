"""Common behavior of ROIs and overlays."""

import weakref
from collections.abc import Mapping
from typing import Any, ClassVar, List, Optional, Protocol, Tuple

from loguru import logger

from bioseq.events import ChangeEvent, EventKind, Listener, ListenerList, UpdateCoalescer


class Surface(Protocol):
    """Anything an annotation can be displayed on (a canvas, a 3D view, ...)."""

    def remove_layer(self, annotation: "Annotation") -> None: ...


class Annotation:
    """
    Base class for objects attachable to a sequence.

    An annotation keeps weak references to the sequences and surfaces it is
    attached to; those are only used for containment queries and to detach it
    on :meth:`remove`, never for ownership.

    Subclasses set ``TAG``, the stable type tag used by
    :class:`~bioseq.annotation.registry.AnnotationRegistry`, and extend
    :meth:`save_to` / :meth:`load_from`.
    """

    TAG: ClassVar[str] = ""
    USER_EDITABLE: ClassVar[Tuple[str, ...]] = ("name",)
    """Properties a user (GUI) edit is allowed to change when not read only"""

    PROPERTY_NAME = "name"
    PROPERTY_READ_ONLY = "read_only"
    PROPERTY_CAN_BE_REMOVED = "can_be_removed"
    PROPERTY_PERSISTENT = "persistent"

    def __init__(self, name: str = "", *, annotation_id: Optional[int] = None):
        self.id = annotation_id
        self._name = name
        self._read_only = False
        self._can_be_removed = True
        self._persistent = False
        self._focused = False
        self._selected = False

        self._listeners = ListenerList()
        self._updater = UpdateCoalescer(self._listeners.fire)
        self._sequences = weakref.WeakSet()
        self._surfaces = weakref.WeakSet()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id}, name={self._name!r})"

    # ---------------- Properties ----------------

    def _set_property(self, attr: str, value: Any, property_name: str) -> None:
        if getattr(self, attr) == value:
            return
        setattr(self, attr, value)
        self.property_changed(property_name)

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._set_property("_name", value, self.PROPERTY_NAME)

    @property
    def read_only(self) -> bool:
        """When True, user (GUI) edits are refused, core edits still succeed"""
        return self._read_only

    @read_only.setter
    def read_only(self, value: bool) -> None:
        self._set_property("_read_only", bool(value), self.PROPERTY_READ_ONLY)

    @property
    def can_be_removed(self) -> bool:
        """When False, user (GUI) removal from a sequence is refused"""
        return self._can_be_removed

    @can_be_removed.setter
    def can_be_removed(self, value: bool) -> None:
        self._set_property("_can_be_removed", bool(value), self.PROPERTY_CAN_BE_REMOVED)

    @property
    def persistent(self) -> bool:
        """Only persistent annotations are saved by ``AnnotationRegistry.save_all``"""
        return self._persistent

    @persistent.setter
    def persistent(self, value: bool) -> None:
        self._set_property("_persistent", bool(value), self.PROPERTY_PERSISTENT)

    @property
    def focused(self) -> bool:
        return self._focused

    @focused.setter
    def focused(self, value: bool) -> None:
        if self._focused != value:
            self._focused = bool(value)
            self._updater.changed(ChangeEvent(self, EventKind.FOCUS))

    @property
    def selected(self) -> bool:
        return self._selected

    @selected.setter
    def selected(self, value: bool) -> None:
        if self._selected != value:
            self._selected = bool(value)
            self._updater.changed(ChangeEvent(self, EventKind.SELECTION))

    def user_set(self, property_name: str, value: Any) -> bool:
        """Apply an edit coming from the user interface.

        Returns:
            False (and leaves the annotation untouched) when the annotation is
            read only or the property is not user editable, True otherwise
        """
        if self._read_only:
            logger.debug(f"{self!r} is read only, ignoring edit of '{property_name}'")
            return False
        if property_name not in self.USER_EDITABLE:
            logger.debug(f"'{property_name}' is not editable on {type(self).__name__}")
            return False
        setattr(self, property_name, value)
        return True

    # ---------------- Events ----------------

    def add_listener(self, listener: Listener) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def begin_update(self) -> None:
        self._updater.begin_update()

    def end_update(self) -> None:
        self._updater.end_update()

    def updating(self):
        return self._updater.updating()

    @property
    def is_updating(self) -> bool:
        return self._updater.is_updating

    def property_changed(self, property_name: str) -> None:
        self._updater.changed(ChangeEvent(self, EventKind.PROPERTY, property_name))

    def changed(self, what: Optional[str] = None) -> None:
        """Notify that the content (geometry, painting) of the annotation changed."""
        self._updater.changed(ChangeEvent(self, EventKind.CONTENT, what))

    # ---------------- Attachment ----------------

    def _attached(self, sequence) -> None:
        self._sequences.add(sequence)

    def _detached(self, sequence) -> None:
        self._sequences.discard(sequence)

    @property
    def sequences(self) -> List[Any]:
        """Sequences this annotation is currently attached to."""
        return list(self._sequences)

    def is_attached(self, sequence) -> bool:
        if sequence is None:
            return False
        return sequence.contains(self)

    def attach_surface(self, surface: Surface) -> None:
        self._surfaces.add(surface)

    def detach_surface(self, surface: Surface) -> None:
        self._surfaces.discard(surface)

    @property
    def surfaces(self) -> List[Surface]:
        return list(self._surfaces)

    def remove(self) -> None:
        """Detach the annotation from every sequence and surface referencing it."""
        for sequence in list(self._sequences):
            sequence.remove_annotation(self)
        for surface in list(self._surfaces):
            surface.remove_layer(self)
            self._surfaces.discard(surface)

    # ---------------- Persistence ----------------

    def save_to(self, node: dict) -> bool:
        """Write the annotation into ``node``.

        Returns:
            False if ``node`` can't hold the representation
        """
        if not isinstance(node, dict):
            return False
        node["type"] = self.TAG
        node["id"] = self.id
        node["name"] = self._name
        node["read_only"] = self._read_only
        node["can_be_removed"] = self._can_be_removed
        return True

    def load_from(self, node: Mapping, preserve_id: bool = False) -> bool:
        """Restore the annotation from ``node``.

        Subclasses raise ``KeyError`` / ``TypeError`` / ``ValueError`` on
        malformed content.

        Args:
            node: Representation written by :meth:`save_to`
            preserve_id: Keep the current id instead of the stored one

        Returns:
            False if ``node`` is not a representation at all
        """
        if not isinstance(node, Mapping):
            return False

        with self._updater.updating():
            if not preserve_id:
                stored_id = node.get("id")
                if stored_id is not None and not isinstance(stored_id, int):
                    raise TypeError(f"Annotation id must be an int, got {stored_id!r}")
                self.id = stored_id
            name = node.get("name", "")
            if not isinstance(name, str):
                raise TypeError(f"Annotation name must be a string, got {name!r}")
            self.name = name
            self.read_only = bool(node.get("read_only", False))
            self.can_be_removed = bool(node.get("can_be_removed", True))
        return True
