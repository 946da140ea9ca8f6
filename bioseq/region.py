"""Axis aligned 5D (X, Y, Z, T, C) integer regions."""

from dataclasses import dataclass
from typing import Optional, Tuple

AXES = ("x", "y", "z", "t", "c")


@dataclass(frozen=True)
class Region5D:
    """
    Integer region of a sequence.

    A ``None`` size means the region is infinite along that axis, i.e. it covers
    the full current extent whatever the start value is.
    """

    x: int = 0
    y: int = 0
    z: int = 0
    t: int = 0
    c: int = 0
    size_x: Optional[int] = None
    size_y: Optional[int] = None
    size_z: Optional[int] = None
    size_t: Optional[int] = None
    size_c: Optional[int] = None

    @classmethod
    def infinite(cls) -> "Region5D":
        return cls()

    def is_infinite(self, axis: str) -> bool:
        return getattr(self, f"size_{axis}") is None

    def clamp(self, axis: str, size: int) -> Tuple[int, int]:
        """Return the ``[start, end)`` range of ``axis`` clamped to ``[0, size)``.

        The range is empty (``start == end``) when the region and the extent
        don't intersect.
        """
        if axis not in AXES:
            raise ValueError(f"Unknown axis: {axis}")
        if self.is_infinite(axis):
            return 0, size

        start = getattr(self, axis)
        length = getattr(self, f"size_{axis}")
        begin = min(max(0, start), size)
        end = max(begin, min(size, start + length))
        return begin, end
