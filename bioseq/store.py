"""Sparse (t, z) -> Plane storage."""

from typing import Dict, Iterator, List, Optional, Tuple

from bioseq.plane import Plane


class PlaneStore:
    """
    Sparse mapping from (time index, depth index) to a :class:`.Plane`.

    A key without an entry is *absent*, which is not the same thing as a zero
    filled plane. Empty frames are pruned so that ``size_t`` and ``size_z`` only
    reflect present planes.

    The store is not thread safe on its own, the owning sequence serializes access.
    """

    def __init__(self) -> None:
        self._frames: Dict[int, Dict[int, Plane]] = {}

    def get(self, t: int, z: int) -> Optional[Plane]:
        frame = self._frames.get(t)
        if frame is None:
            return None
        return frame.get(z)

    def set(self, t: int, z: int, plane: Plane) -> None:
        """Insert a plane, replacing the whole plane previously stored at (t, z)."""
        self._frames.setdefault(t, {})[z] = plane

    def remove(self, t: int, z: int) -> bool:
        """Delete the entry at (t, z).

        Returns:
            True if a plane was removed
        """
        frame = self._frames.get(t)
        if frame is None or z not in frame:
            return False
        del frame[z]
        if not frame:
            del self._frames[t]
        return True

    def remove_frame(self, t: int) -> bool:
        """Delete every plane of time index ``t``."""
        return self._frames.pop(t, None) is not None

    def remove_all(self) -> bool:
        """Clear the store, return True if something was removed."""
        had_planes = bool(self._frames)
        self._frames.clear()
        return had_planes

    def frame(self, t: int) -> Dict[int, Plane]:
        """Snapshot (shallow copy) of the planes at time index ``t``, keyed by z."""
        return dict(self._frames.get(t, {}))

    def is_empty(self) -> bool:
        return not self._frames

    @property
    def size_t(self) -> int:
        if not self._frames:
            return 0
        return max(self._frames) + 1

    @property
    def size_z(self) -> int:
        return max((max(frame) + 1 for frame in self._frames.values()), default=0)

    def size_z_at(self, t: int) -> int:
        frame = self._frames.get(t)
        if not frame:
            return 0
        return max(frame) + 1

    def keys(self) -> List[Tuple[int, int]]:
        """Present (t, z) keys in T then Z order."""
        return [(t, z) for t in sorted(self._frames) for z in sorted(self._frames[t])]

    def planes(self) -> Iterator[Plane]:
        for t, z in self.keys():
            yield self._frames[t][z]

    def __len__(self) -> int:
        return sum(len(frame) for frame in self._frames.values())

    def __contains__(self, key: Tuple[int, int]) -> bool:
        t, z = key
        return self.get(t, z) is not None
