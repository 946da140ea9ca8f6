"""Regions of interest."""

import math
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import ClassVar, Optional, Tuple

import numpy as np

from bioseq.annotation.base import Annotation
from bioseq.region import Region5D

Color = Tuple[int, int, int]


def _color(value) -> Color:
    r, g, b = (int(v) for v in value)
    for v in (r, g, b):
        if not 0 <= v <= 255:
            raise ValueError(f"Color component out of range: {v}")
    return r, g, b


class ROI(Annotation, ABC):
    """
    Base class of 2D regions of interest.

    A ROI lives on the XY plane; ``z``, ``t`` and ``c`` restrict it to one
    slice, frame or channel, ``-1`` meaning the ROI spans the whole axis.
    Subclasses implement :meth:`bounds2d` and :meth:`contains_points`.
    """

    DEFAULT_COLOR: ClassVar[Color] = (0, 255, 0)
    DEFAULT_OPACITY: ClassVar[float] = 0.3
    USER_EDITABLE = ("name", "color", "opacity", "z", "t", "c")

    def __init__(
        self,
        name: str = "",
        *,
        color: Color = DEFAULT_COLOR,
        opacity: float = DEFAULT_OPACITY,
        z: int = -1,
        t: int = -1,
        c: int = -1,
        annotation_id: Optional[int] = None,
    ):
        super().__init__(name, annotation_id=annotation_id)
        self._color = _color(color)
        self._opacity = float(opacity)
        self._z = z
        self._t = t
        self._c = c

    @property
    def color(self) -> Color:
        return self._color

    @color.setter
    def color(self, value: Color) -> None:
        self._set_property("_color", _color(value), "color")

    @property
    def opacity(self) -> float:
        return self._opacity

    @opacity.setter
    def opacity(self, value: float) -> None:
        self._set_property("_opacity", min(1.0, max(0.0, float(value))), "opacity")

    @property
    def z(self) -> int:
        return self._z

    @z.setter
    def z(self, value: int) -> None:
        self._set_property("_z", int(value), "z")

    @property
    def t(self) -> int:
        return self._t

    @t.setter
    def t(self, value: int) -> None:
        self._set_property("_t", int(value), "t")

    @property
    def c(self) -> int:
        return self._c

    @c.setter
    def c(self, value: int) -> None:
        self._set_property("_c", int(value), "c")

    # ---------------- Geometry ----------------

    @abstractmethod
    def bounds2d(self) -> Tuple[float, float, float, float]:
        """(x, y, width, height) bounding box in pixel coordinates."""

    @abstractmethod
    def contains_points(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """Vectorized point test, returns a boolean array shaped like ``xs``."""

    @abstractmethod
    def translate(self, dx: float, dy: float) -> None:
        """Move the ROI by (dx, dy) pixels."""

    def contains(self, x: float, y: float) -> bool:
        return bool(self.contains_points(np.asarray([x]), np.asarray([y]))[0])

    def on_plane(self, z: int, t: int, c: Optional[int] = None) -> bool:
        """True if the ROI covers position (z, t[, c])."""
        if self._z != -1 and self._z != z:
            return False
        if self._t != -1 and self._t != t:
            return False
        if c is not None and self._c != -1 and self._c != c:
            return False
        return True

    def bounds5d(self) -> Region5D:
        """Integer 5D bounds, infinite on the axes the ROI spans entirely."""
        x, y, w, h = self.bounds2d()
        x0, y0 = math.floor(x), math.floor(y)
        x1, y1 = math.ceil(x + w), math.ceil(y + h)

        def axis(value: int) -> Tuple[int, Optional[int]]:
            return (0, None) if value == -1 else (value, 1)

        z, size_z = axis(self._z)
        t, size_t = axis(self._t)
        c, size_c = axis(self._c)
        return Region5D(
            x=x0, y=y0, z=z, t=t, c=c,
            size_x=x1 - x0, size_y=y1 - y0, size_z=size_z, size_t=size_t, size_c=size_c,
        )  # fmt: skip

    def mask(
        self,
        x: int,
        y: int,
        width: int,
        height: int,
        z: Optional[int] = None,
        t: Optional[int] = None,
        c: Optional[int] = None,
    ) -> np.ndarray:
        """Boolean (height, width) mask of the ROI over a pixel window.

        A pixel belongs to the ROI when its center is inside. If a position is
        given for an axis the ROI is restricted on, the mask is empty unless
        they match.
        """
        if (z is not None and self._z not in (-1, z)) or (
            t is not None and self._t not in (-1, t)
        ):
            return np.zeros((height, width), dtype=bool)
        if c is not None and self._c not in (-1, c):
            return np.zeros((height, width), dtype=bool)

        ys, xs = np.mgrid[y : y + height, x : x + width]
        return self.contains_points(xs + 0.5, ys + 0.5)

    # ---------------- Persistence ----------------

    def save_to(self, node: dict) -> bool:
        if not super().save_to(node):
            return False
        node["color"] = list(self._color)
        node["opacity"] = self._opacity
        node["z"] = self._z
        node["t"] = self._t
        node["c"] = self._c
        return True

    def load_from(self, node: Mapping, preserve_id: bool = False) -> bool:
        with self._updater.updating():
            if not super().load_from(node, preserve_id):
                return False
            self.color = node.get("color", self.DEFAULT_COLOR)
            self.opacity = node.get("opacity", self.DEFAULT_OPACITY)
            self.z = node.get("z", -1)
            self.t = node.get("t", -1)
            self.c = node.get("c", -1)
        return True


class _BoxROI(ROI):
    """ROI defined by a bounding box."""

    def __init__(
        self,
        x: float = 0.0,
        y: float = 0.0,
        width: float = 0.0,
        height: float = 0.0,
        name: str = "",
        **kwargs,
    ):
        super().__init__(name, **kwargs)
        self._box = (float(x), float(y), float(width), float(height))

    @property
    def box(self) -> Tuple[float, float, float, float]:
        return self._box

    @box.setter
    def box(self, value: Tuple[float, float, float, float]) -> None:
        x, y, w, h = (float(v) for v in value)
        if w < 0 or h < 0:
            raise ValueError(f"Negative ROI size: {w} x {h}")
        if (x, y, w, h) != self._box:
            self._box = (x, y, w, h)
            self.changed("geometry")

    def bounds2d(self) -> Tuple[float, float, float, float]:
        return self._box

    def translate(self, dx: float, dy: float) -> None:
        x, y, w, h = self._box
        self.box = (x + dx, y + dy, w, h)

    def save_to(self, node: dict) -> bool:
        if not super().save_to(node):
            return False
        node["box"] = list(self._box)
        return True

    def load_from(self, node: Mapping, preserve_id: bool = False) -> bool:
        with self._updater.updating():
            if not super().load_from(node, preserve_id):
                return False
            box = node["box"]
            if len(box) != 4:
                raise ValueError(f"ROI box needs 4 values, got {box!r}")
            self.box = box
        return True


class RectangleROI(_BoxROI):
    TAG = "roi.rectangle"

    def contains_points(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        x, y, w, h = self._box
        return (xs >= x) & (xs < x + w) & (ys >= y) & (ys < y + h)


class EllipseROI(_BoxROI):
    """Ellipse inscribed in its bounding box."""

    TAG = "roi.ellipse"

    def contains_points(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        x, y, w, h = self._box
        if w == 0 or h == 0:
            return np.zeros(np.shape(xs), dtype=bool)
        rx, ry = w / 2, h / 2
        dx = (np.asarray(xs, dtype=np.float64) - (x + rx)) / rx
        dy = (np.asarray(ys, dtype=np.float64) - (y + ry)) / ry
        return dx * dx + dy * dy <= 1.0
