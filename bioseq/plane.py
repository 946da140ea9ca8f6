"""2D multi-channel raster stored at one (t, z) position of a sequence."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence as Seq, Tuple

import numpy as np
from PIL import Image
from scipy import ndimage

from bioseq.types import DataType, Scaler, cast


class ResampleFilter(Enum):
    """Filters available when plane content is resized."""

    NEAREST = "nearest"
    BILINEAR = "bilinear"
    BICUBIC = "bicubic"

    @property
    def pil(self) -> Image.Resampling:
        return {
            ResampleFilter.NEAREST: Image.Resampling.NEAREST,
            ResampleFilter.BILINEAR: Image.Resampling.BILINEAR,
            ResampleFilter.BICUBIC: Image.Resampling.BICUBIC,
        }[self]

    @property
    def order(self) -> int:
        """Spline order of the filter for full precision resampling"""
        return {
            ResampleFilter.NEAREST: 0,
            ResampleFilter.BILINEAR: 1,
            ResampleFilter.BICUBIC: 3,
        }[self]


class Align(Enum):
    """Anchor used to place a plane on a canvas of a different size."""

    START = "start"
    CENTER = "center"
    END = "end"

    def offset(self, size: int, new_size: int) -> int:
        if self is Align.START:
            return 0
        if self is Align.END:
            return new_size - size
        return (new_size - size) // 2


# float32 holds every value of these types exactly
_FLOAT32_EXACT = (
    DataType.UINT8,
    DataType.INT8,
    DataType.UINT16,
    DataType.INT16,
    DataType.FLOAT32,
)


def _resize_channel(
    channel: np.ndarray, width: int, height: int, resample: ResampleFilter, exact: bool
) -> np.ndarray:
    if exact:
        # Mode "F" (32 bit float) supports every filter for every source type
        img = Image.fromarray(channel.astype(np.float32))
        return np.asarray(img.resize((width, height), resample=resample.pil))

    src_height, src_width = channel.shape
    # destination pixel centers in source pixel units
    ys = (np.arange(height) + 0.5) * src_height / height
    xs = (np.arange(width) + 0.5) * src_width / width
    if resample is ResampleFilter.NEAREST:
        rows = np.minimum(ys.astype(np.intp), src_height - 1)
        cols = np.minimum(xs.astype(np.intp), src_width - 1)
        return channel[np.ix_(rows, cols)]

    grid_y, grid_x = np.meshgrid(ys - 0.5, xs - 0.5, indexing="ij")
    return ndimage.map_coordinates(
        channel.astype(np.float64), [grid_y, grid_x], order=resample.order, mode="nearest"
    )


def _rotate_channel(
    channel: np.ndarray,
    x_origin: float,
    y_origin: float,
    angle: float,
    resample: ResampleFilter,
    exact: bool,
) -> np.ndarray:
    if exact:
        img = Image.fromarray(channel.astype(np.float32))
        # Pillow turns counter-clockwise for positive angles
        img = img.rotate(-math.degrees(angle), resample=resample.pil, center=(x_origin, y_origin))
        return np.asarray(img)

    # Same inverse mapping as Image.rotate, in pixel index coordinates
    cos_a = round(math.cos(angle), 15)
    sin_a = round(math.sin(angle), 15)
    cx, cy = x_origin - 0.5, y_origin - 0.5
    ys, xs = np.mgrid[0 : channel.shape[0], 0 : channel.shape[1]].astype(np.float64)
    src_x = cx + cos_a * (xs - cx) + sin_a * (ys - cy)
    src_y = cy - sin_a * (xs - cx) + cos_a * (ys - cy)
    return ndimage.map_coordinates(
        channel.astype(np.float64), [src_y, src_x], order=resample.order, cval=0.0
    )


@dataclass(eq=False)
class Plane:
    """2D pixel raster with all channels of one (t, z) position.

    Attributes:
        data: NumPy array with (C, Y, X) dimensions. A 2D (Y, X) array is
            accepted and stored as a single channel.
    """

    data: np.ndarray

    def __post_init__(self):
        data = np.asarray(self.data)
        if data.ndim == 2:
            data = data[np.newaxis, ...]
        if data.ndim != 3:
            raise ValueError(f"Expected 2D or (C, Y, X) plane, got {data.ndim}D")
        # Validates the dtype
        DataType.from_dtype(data.dtype)
        self.data = data

    @classmethod
    def zeros(cls, size_x: int, size_y: int, size_c: int, data_type: DataType) -> "Plane":
        return cls(np.zeros((size_c, size_y, size_x), dtype=data_type.dtype))

    @property
    def size_x(self) -> int:
        return self.data.shape[2]

    @property
    def size_y(self) -> int:
        return self.data.shape[1]

    @property
    def size_c(self) -> int:
        return self.data.shape[0]

    @property
    def data_type(self) -> DataType:
        return DataType.from_dtype(self.data.dtype)

    @property
    def structure(self) -> Tuple[int, int, int, DataType]:
        """(size_x, size_y, size_c, data_type) tuple used for compatibility checks."""
        return self.size_x, self.size_y, self.size_c, self.data_type

    def copy(self) -> "Plane":
        return Plane(self.data.copy())

    def is_compatible(self, other: "Plane") -> bool:
        return self.structure == other.structure

    def equals(self, other: Optional["Plane"]) -> bool:
        """Content equality (same structure and same pixel values)."""
        if other is None:
            return False
        return self.is_compatible(other) and np.array_equal(self.data, other.data)

    def channel_bounds(self, c: int) -> Tuple[float, float]:
        channel = self.data[c]
        return float(channel.min()), float(channel.max())

    def extract_channels(self, channels: Iterable[int]) -> "Plane":
        """Build a new plane from the listed channels, in the listed order.

        Channel indexes outside of the plane are skipped.
        """
        keep = [c for c in channels if 0 <= c < self.size_c]
        return Plane(self.data[keep].copy())

    def add_channels(self, count: int) -> "Plane":
        """Return a copy padded with ``count`` zero filled channels."""
        if count <= 0:
            return self.copy()
        pad = np.zeros((count, self.size_y, self.size_x), dtype=self.data.dtype)
        return Plane(np.concatenate([self.data, pad], axis=0))

    def sub_image(
        self,
        x: int,
        y: int,
        width: int,
        height: int,
        c_start: int = 0,
        c_count: Optional[int] = None,
    ) -> "Plane":
        """Crop a region, clamped to the plane bounds."""
        x0 = max(0, x)
        y0 = max(0, y)
        x1 = min(self.size_x, x + width)
        y1 = min(self.size_y, y + height)
        c0 = max(0, c_start)
        c1 = self.size_c if c_count is None else min(self.size_c, c_start + c_count)
        return Plane(self.data[c0:c1, y0:y1, x0:x1].copy())

    def scale(
        self,
        width: int,
        height: int,
        resize_content: bool = True,
        x_align: Align = Align.CENTER,
        y_align: Align = Align.CENTER,
        resample: ResampleFilter = ResampleFilter.BILINEAR,
    ) -> "Plane":
        """Return a plane of ``width`` x ``height`` pixels.

        Args:
            width: New X size
            height: New Y size
            resize_content: If True the content is resampled with ``resample``,
                otherwise it is copied unchanged onto a zero filled canvas
                anchored with ``x_align`` / ``y_align``
            x_align: Horizontal anchor (only used if ``resize_content`` is False)
            y_align: Vertical anchor (only used if ``resize_content`` is False)
            resample: Filter used to resize content

        Returns:
            New Plane with the same channel count and data type
        """
        if (width, height) == (self.size_x, self.size_y):
            return self.copy()

        data_type = self.data_type

        if resize_content:
            exact = data_type in _FLOAT32_EXACT
            channels = [
                cast(_resize_channel(self.data[c], width, height, resample, exact), data_type)
                for c in range(self.size_c)
            ]
            return Plane(np.stack(channels))

        result = np.zeros((self.size_c, height, width), dtype=self.data.dtype)
        off_x = x_align.offset(self.size_x, width)
        off_y = y_align.offset(self.size_y, height)

        # Overlap between the source and the destination canvas
        src_x0, src_y0 = max(0, -off_x), max(0, -off_y)
        dst_x0, dst_y0 = max(0, off_x), max(0, off_y)
        copy_w = min(self.size_x - src_x0, width - dst_x0)
        copy_h = min(self.size_y - src_y0, height - dst_y0)

        if copy_w > 0 and copy_h > 0:
            result[:, dst_y0 : dst_y0 + copy_h, dst_x0 : dst_x0 + copy_w] = self.data[
                :, src_y0 : src_y0 + copy_h, src_x0 : src_x0 + copy_w
            ]
        return Plane(result)

    def rotate(
        self,
        x_origin: float,
        y_origin: float,
        angle: float,
        resample: ResampleFilter = ResampleFilter.BILINEAR,
    ) -> "Plane":
        """Rotate the content around (``x_origin``, ``y_origin``).

        Args:
            x_origin: X of the rotation center, in pixels
            y_origin: Y of the rotation center, in pixels
            angle: Angle in radians, clockwise as displayed (Y axis pointing down)
            resample: Filter used to resample the rotated content

        Returns:
            New Plane of the same size and type, zero where nothing maps
        """
        data_type = self.data_type
        exact = data_type in _FLOAT32_EXACT
        channels = [
            cast(
                _rotate_channel(self.data[c], x_origin, y_origin, angle, resample, exact),
                data_type,
            )
            for c in range(self.size_c)
        ]
        return Plane(np.stack(channels))

    def convert(
        self, data_type: DataType, scalers: Optional[Seq[Optional[Scaler]]] = None
    ) -> "Plane":
        """Convert pixel values to ``data_type``.

        Args:
            data_type: Destination data type
            scalers: One scaler per channel applied before the cast, or None
                to only cast (with saturation)

        Returns:
            New converted Plane
        """
        if scalers is None:
            return Plane(cast(self.data, data_type))

        channels: List[np.ndarray] = []
        for c in range(self.size_c):
            scaler = scalers[c] if c < len(scalers) else None
            values = self.data[c] if scaler is None else scaler.scale(self.data[c])
            channels.append(cast(values, data_type))
        return Plane(np.stack(channels))

    @classmethod
    def from_channels(cls, planes: Seq["Plane"]) -> "Plane":
        """Stack the channels of several planes of identical X/Y/type into one plane."""
        if not planes:
            raise ValueError("Cannot build a plane from an empty list")
        types = {p.data_type for p in planes}
        if len(types) > 1:
            raise ValueError(f"Cannot stack planes of different data types: {types}")
        return cls(np.concatenate([p.data for p in planes], axis=0))
