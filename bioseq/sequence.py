"""The multi-dimensional (X, Y, C, Z, T) image container."""

import copy
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
from loguru import logger

from bioseq.annotation.base import Annotation
from bioseq.annotation.ids import IdAllocator
from bioseq.annotation.overlay import Overlay, sort_overlays
from bioseq.annotation.roi import ROI
from bioseq.events import ChangeEvent, EventKind, Listener, ListenerList, UpdateCoalescer
from bioseq.exceptions import IncompatiblePlaneError, SequenceRequiredError
from bioseq.plane import Plane
from bioseq.store import PlaneStore
from bioseq.types import DataType

COLORMAPS = ("red", "green", "blue", "cyan", "magenta", "yellow")


@dataclass
class ChannelInfo:
    """Per channel metadata, ``None`` fields fall back to the sequence defaults."""

    name: Optional[str] = None
    colormap: Optional[str] = None


@dataclass
class SequenceMetadata:
    """Physical calibration and free-form metadata of a sequence.

    Attributes:
        pixel_size_x: Pixel width in microns
        pixel_size_y: Pixel height in microns
        pixel_size_z: Slice spacing in microns
        position_x: Stage X position of the first pixel in microns
        position_y: Stage Y position of the first pixel in microns
        position_z: Stage Z position of the first slice in microns
        time_stamp: Acquisition time of the first frame (ms since epoch)
        time_interval: Time between two frames in seconds
        channels: Per channel name / colormap
        extra: Free-form metadata block
    """

    pixel_size_x: float = 1.0
    pixel_size_y: float = 1.0
    pixel_size_z: float = 1.0
    position_x: float = 0.0
    position_y: float = 0.0
    position_z: float = 0.0
    time_stamp: int = 0
    time_interval: float = 1.0
    channels: List[ChannelInfo] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def copy(self) -> "SequenceMetadata":
        return copy.deepcopy(self)

    def channel(self, c: int) -> ChannelInfo:
        """Return the (mutable) info of channel ``c``, creating entries as needed."""
        while len(self.channels) <= c:
            self.channels.append(ChannelInfo())
        return self.channels[c]

    def keep_channels(self, channels: List[int]) -> "SequenceMetadata":
        """Copy of the metadata with only the listed channels, in the listed order."""
        result = self.copy()
        result.channels = [
            copy.copy(self.channels[c]) if c < len(self.channels) else ChannelInfo()
            for c in channels
        ]
        return result


def require_sequence(sequence: Optional["Sequence"], name: str = "sequence") -> "Sequence":
    if sequence is None:
        raise SequenceRequiredError(f"'{name}' must be a Sequence, got None")
    return sequence


def _metadata_property(attr: str, doc: str) -> property:
    def getter(self: "Sequence"):
        return getattr(self.metadata, attr)

    def setter(self: "Sequence", value) -> None:
        self._set_metadata(attr, value)

    return property(getter, setter, doc=doc)


class Sequence:
    """
    Sparse 5D image: planes of identical X/Y/C/type keyed by (t, z).

    The X/Y/C/data type structure is adopted from the first plane written
    into an empty sequence (or set with :meth:`presize`); every later plane
    must match it.

    Each mutating method runs in its own transaction and callers can group
    several mutations with :meth:`updating`; listeners receive one coalesced
    :class:`~bioseq.events.ChangeEvent` per outermost transaction.

    All state is guarded by one re-entrant lock, events are delivered on the
    thread closing the outermost transaction without holding it.

    Args:
        name: Display name
        metadata: Calibration and channel metadata, a default one if None
        ids: Allocator used to identify attached annotations
    """

    def __init__(
        self,
        name: str = "",
        metadata: Optional[SequenceMetadata] = None,
        ids: Optional[IdAllocator] = None,
    ):
        self._lock = threading.RLock()
        self._name = name
        self.metadata = metadata if metadata is not None else SequenceMetadata()
        self._store = PlaneStore()
        self._size_x = 0
        self._size_y = 0
        self._size_c = 0
        self._data_type: Optional[DataType] = None

        self._listeners = ListenerList()
        self._updater = UpdateCoalescer(self._listeners.fire, lock=self._lock)
        self._rois: List[ROI] = []
        self._overlays: List[Overlay] = []
        self.ids = ids if ids is not None else IdAllocator()

    @classmethod
    def from_metadata(cls, series, name: str = "") -> "Sequence":
        """Create an empty sequence sized from series metadata.

        Args:
            series: Object with ``size_x``, ``size_y``, ``size_c`` and
                ``data_type`` attributes and, optionally, ``pixel_size_x/y/z``
                (e.g. :class:`bioseq.importer.SeriesMetadata`)
            name: Display name of the sequence

        Returns:
            New empty Sequence
        """
        metadata = SequenceMetadata()
        for axis in ("x", "y", "z"):
            size = getattr(series, f"pixel_size_{axis}", None)
            if size:
                setattr(metadata, f"pixel_size_{axis}", float(size))
        seq = cls(name, metadata)
        data_type = series.data_type
        if not isinstance(data_type, DataType):
            data_type = DataType.from_dtype(data_type)
        seq.presize(series.size_x, series.size_y, series.size_c, data_type)
        return seq

    def __repr__(self) -> str:
        return (
            f"Sequence(name={self._name!r}, x={self._size_x}, y={self._size_y}, "
            f"c={self._size_c}, z={self.size_z}, t={self.size_t}, type={self._data_type})"
        )

    # ---------------- Events ----------------

    def _changed(
        self, kind: EventKind, property_name: Optional[str] = None, target: Any = None
    ) -> None:
        self._updater.changed(ChangeEvent(self, kind, property_name, target))

    def add_listener(self, listener: Listener) -> None:
        self._listeners.add(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    def begin_update(self) -> None:
        self._updater.begin_update()

    def end_update(self) -> None:
        self._updater.end_update()

    def updating(self):
        """Context manager grouping mutations into one notification."""
        return self._updater.updating()

    @property
    def is_updating(self) -> bool:
        return self._updater.is_updating

    # ---------------- Structure ----------------

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        with self._lock:
            if value == self._name:
                return
            self._name = value
        self._changed(EventKind.PROPERTY, "name")

    @property
    def size_x(self) -> int:
        return self._size_x

    @property
    def size_y(self) -> int:
        return self._size_y

    @property
    def size_c(self) -> int:
        return self._size_c

    @property
    def data_type(self) -> Optional[DataType]:
        return self._data_type

    @property
    def size_t(self) -> int:
        with self._lock:
            return self._store.size_t

    @property
    def size_z(self) -> int:
        with self._lock:
            return self._store.size_z

    def size_z_at(self, t: int) -> int:
        with self._lock:
            return self._store.size_z_at(t)

    @property
    def structure(self) -> Tuple[int, int, int, Optional[DataType]]:
        return self._size_x, self._size_y, self._size_c, self._data_type

    def is_empty(self) -> bool:
        with self._lock:
            return self._store.is_empty()

    def _set_structure(self, size_x: int, size_y: int, size_c: int, data_type: DataType) -> bool:
        new = (size_x, size_y, size_c, data_type)
        if new == self.structure:
            return False
        self._size_x, self._size_y, self._size_c, self._data_type = new
        return True

    def presize(self, size_x: int, size_y: int, size_c: int, data_type: DataType) -> None:
        """Set the X/Y/C/type structure before any plane is written.

        Raises:
            IncompatiblePlaneError: if the sequence holds planes of another structure
        """
        with self._lock:
            if not self._store.is_empty() and (size_x, size_y, size_c, data_type) != self.structure:
                raise IncompatiblePlaneError(
                    f"Cannot resize non empty {self!r} to {(size_x, size_y, size_c, data_type)}"
                )
            type_changed = self._set_structure(size_x, size_y, size_c, data_type)
        if type_changed:
            self._changed(EventKind.TYPE)

    def new_plane(self) -> Plane:
        """Zero filled plane matching the sequence structure."""
        if self._data_type is None:
            raise IncompatiblePlaneError(f"{self!r} has no structure yet")
        return Plane.zeros(self._size_x, self._size_y, self._size_c, self._data_type)

    # ---------------- Metadata ----------------

    def _set_metadata(self, attr: str, value) -> None:
        with self._lock:
            if getattr(self.metadata, attr) == value:
                return
            setattr(self.metadata, attr, value)
        self._changed(EventKind.PROPERTY, attr)

    pixel_size_x = _metadata_property("pixel_size_x", "Pixel width in microns")
    pixel_size_y = _metadata_property("pixel_size_y", "Pixel height in microns")
    pixel_size_z = _metadata_property("pixel_size_z", "Slice spacing in microns")
    position_x = _metadata_property("position_x", "X position in microns")
    position_y = _metadata_property("position_y", "Y position in microns")
    position_z = _metadata_property("position_z", "Z position in microns")
    time_stamp = _metadata_property("time_stamp", "Acquisition time in ms since epoch")
    time_interval = _metadata_property("time_interval", "Seconds between frames")

    def position_t_offset(self, t: int) -> float:
        """Time (seconds) of frame ``t`` relative to the first frame."""
        return t * self.metadata.time_interval

    def default_channel_name(self, c: int) -> str:
        return f"ch {c}"

    def default_colormap(self, c: int) -> str:
        if self._size_c == 1:
            return "gray"
        return COLORMAPS[c % len(COLORMAPS)]

    def _channel_info(self, c: int) -> ChannelInfo:
        if 0 <= c < len(self.metadata.channels):
            return self.metadata.channels[c]
        return ChannelInfo()

    def channel_name(self, c: int) -> str:
        name = self._channel_info(c).name
        return self.default_channel_name(c) if name is None else name

    def set_channel_name(self, c: int, name: Optional[str]) -> None:
        with self._lock:
            info = self.metadata.channel(c)
            if info.name == name:
                return
            info.name = name
        self._changed(EventKind.PROPERTY, "channel_name", target=c)

    def is_default_channel_name(self, c: int) -> bool:
        name = self._channel_info(c).name
        return name is None or name == self.default_channel_name(c)

    def colormap(self, c: int) -> str:
        colormap = self._channel_info(c).colormap
        return self.default_colormap(c) if colormap is None else colormap

    def set_colormap(self, c: int, colormap: Optional[str]) -> None:
        with self._lock:
            info = self.metadata.channel(c)
            if info.colormap == colormap:
                return
            info.colormap = colormap
        self._changed(EventKind.COLORMAP, target=c)

    def is_default_colormap(self, c: int) -> bool:
        colormap = self._channel_info(c).colormap
        return colormap is None or colormap == self.default_colormap(c)

    # ---------------- Planes ----------------

    def get_image(self, t: int, z: int) -> Optional[Plane]:
        """Plane at (t, z), or None if absent."""
        with self._lock:
            return self._store.get(t, z)

    def set_image(self, t: int, z: int, image: Union[Plane, np.ndarray, None]) -> None:
        """Store a plane at (t, z), replacing the previous one.

        Args:
            t: Time index
            z: Depth index
            image: Plane or (C, Y, X) / (Y, X) array, None removes the plane

        Raises:
            ValueError: if an index is negative
            IncompatiblePlaneError: if the plane doesn't match the sequence structure
        """
        if image is None:
            self.remove_image(t, z)
            return
        if t < 0 or z < 0:
            raise ValueError(f"Negative plane index: t={t}, z={z}")
        plane = image if isinstance(image, Plane) else Plane(image)

        with self.updating():
            with self._lock:
                if self._store.is_empty():
                    type_changed = self._set_structure(*plane.structure)
                elif plane.structure != self.structure:
                    raise IncompatiblePlaneError(
                        f"Plane {plane.structure} doesn't match {self.structure}"
                    )
                else:
                    type_changed = False
                self._store.set(t, z, plane)
            if type_changed:
                self._changed(EventKind.TYPE)
            self._changed(EventKind.DATA, target=(t, z))

    def remove_image(self, t: int, z: int) -> bool:
        with self._lock:
            removed = self._store.remove(t, z)
        if removed:
            self._changed(EventKind.DATA, target=(t, z))
        return removed

    def remove_all_images(self, t: Optional[int] = None) -> bool:
        """Remove every plane, or every plane of time index ``t``."""
        with self._lock:
            if t is None:
                removed = self._store.remove_all()
            else:
                removed = self._store.remove_frame(t)
        if removed:
            self._changed(EventKind.DATA, target=t)
        return removed

    def get_volume(self, t: int) -> Dict[int, Plane]:
        """Snapshot of the planes of frame ``t`` keyed by z."""
        with self._lock:
            return self._store.frame(t)

    def keys(self) -> List[Tuple[int, int]]:
        with self._lock:
            return self._store.keys()

    def all_images(self) -> List[Plane]:
        """Every present plane in T then Z order."""
        with self._lock:
            return list(self._store.planes())

    def to_array(self) -> np.ndarray:
        """Dense (T, C, Z, Y, X) array, absent planes are zero filled."""
        with self._lock:
            if self._data_type is None:
                return np.zeros((0, 0, 0, 0, 0), dtype=np.uint8)
            size_t, size_z = self._store.size_t, self._store.size_z
            shape = (size_t, self._size_c, size_z, self._size_y, self._size_x)
            result = np.zeros(shape, dtype=self._data_type.dtype)
            for t, z in self._store.keys():
                result[t, :, z] = self._store.get(t, z).data
        return result

    def copy_data_from(self, other: "Sequence") -> None:
        """Replace the planes of this sequence with copies of ``other``'s."""
        require_sequence(other, "other")
        with other._lock:
            items = [(t, z, other._store.get(t, z).copy()) for t, z in other._store.keys()]
            structure = other.structure

        with self.updating():
            self.remove_all_images()
            if structure[3] is not None:
                self.presize(*structure)
            for t, z, plane in items:
                self.set_image(t, z, plane)

    def channel_bounds(self, c: int) -> Tuple[float, float]:
        """Observed min / max of channel ``c`` over all planes ((0, 0) if empty)."""
        bounds = [p.channel_bounds(c) for p in self.all_images() if c < p.size_c]
        if not bounds:
            return 0.0, 0.0
        return min(b[0] for b in bounds), max(b[1] for b in bounds)

    def channel_type_bounds(self, c: int) -> Tuple[float, float]:
        """Value range of channel ``c`` implied by the data type.

        Float types have no meaningful intrinsic range, their data bounds are used.
        """
        if self._data_type is None:
            return 0.0, 0.0
        if self._data_type.is_float:
            return self.channel_bounds(c)
        return self._data_type.type_bounds()

    # ---------------- Annotations ----------------

    def _annotation_changed(self, event: ChangeEvent) -> None:
        kind = EventKind.ROI if isinstance(event.source, ROI) else EventKind.OVERLAY
        self._changed(kind, "changed", target=event.source)

    def _attach(self, annotation: Annotation, collection: list, kind: EventKind) -> bool:
        with self._lock:
            if any(a is annotation for a in collection):
                return False
            collection.append(annotation)
            if annotation.id is None:
                annotation.id = self.ids.next_id()
            else:
                self.ids.reserve(annotation.id)
        annotation._attached(self)
        annotation.add_listener(self._annotation_changed)
        logger.debug(f"Attached {annotation!r} to {self._name!r}")
        self._changed(kind, "added", target=annotation)
        return True

    def _detach(self, annotation: Annotation, collection: list, kind: EventKind) -> bool:
        with self._lock:
            index = next((i for i, a in enumerate(collection) if a is annotation), None)
            if index is None:
                return False
            del collection[index]
        annotation._detached(self)
        annotation.remove_listener(self._annotation_changed)
        self._changed(kind, "removed", target=annotation)
        return True

    def add_roi(self, roi: ROI) -> bool:
        """Attach a ROI, returns False if it was already attached."""
        return self._attach(roi, self._rois, EventKind.ROI)

    def remove_roi(self, roi: ROI, user: bool = False) -> bool:
        """Detach a ROI.

        Args:
            roi: ROI to detach
            user: The removal comes from the user interface, refused if the ROI
                can't be removed

        Returns:
            True if the ROI was detached
        """
        if user and not roi.can_be_removed:
            logger.debug(f"{roi!r} can't be removed")
            return False
        return self._detach(roi, self._rois, EventKind.ROI)

    def remove_all_rois(self) -> None:
        with self.updating():
            for roi in self.rois:
                self.remove_roi(roi)

    @property
    def rois(self) -> List[ROI]:
        with self._lock:
            return list(self._rois)

    def add_overlay(self, overlay: Overlay) -> bool:
        return self._attach(overlay, self._overlays, EventKind.OVERLAY)

    def remove_overlay(self, overlay: Overlay, user: bool = False) -> bool:
        if user and not overlay.can_be_removed:
            logger.debug(f"{overlay!r} can't be removed")
            return False
        return self._detach(overlay, self._overlays, EventKind.OVERLAY)

    @property
    def overlays(self) -> List[Overlay]:
        """Attached overlays, highest priority first."""
        with self._lock:
            return sort_overlays(self._overlays)

    def remove_annotation(self, annotation: Annotation) -> bool:
        if isinstance(annotation, ROI):
            return self.remove_roi(annotation)
        if isinstance(annotation, Overlay):
            return self.remove_overlay(annotation)
        return False

    def contains(self, annotation: Annotation) -> bool:
        with self._lock:
            return any(a is annotation for a in self._rois + self._overlays)
