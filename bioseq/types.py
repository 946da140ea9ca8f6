"""Pixel data types and value scaling."""

from enum import Enum
from typing import Tuple

import numpy as np


class DataType(Enum):
    """Pixel precisions a sequence can hold."""

    UINT8 = "uint8"
    INT8 = "int8"
    UINT16 = "uint16"
    INT16 = "int16"
    UINT32 = "uint32"
    INT32 = "int32"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)

    @property
    def is_float(self) -> bool:
        return self in (DataType.FLOAT32, DataType.FLOAT64)

    @classmethod
    def from_dtype(cls, dtype) -> "DataType":
        """Convert a NumPy dtype (or anything ``np.dtype`` accepts) to a DataType.

        Args:
            dtype: NumPy data type

        Returns:
            Matching DataType member

        Raises:
            ValueError: if the dtype is not a supported pixel type
        """
        try:
            return cls(np.dtype(dtype).name)
        except (TypeError, ValueError):
            raise ValueError(f"Unsupported dtype: {dtype}") from None

    def type_bounds(self) -> Tuple[float, float]:
        """Intrinsic numeric range of the type."""
        if self.is_float:
            info = np.finfo(self.dtype)
        else:
            info = np.iinfo(self.dtype)
        return float(info.min), float(info.max)

    def default_bounds(self) -> Tuple[float, float]:
        """Range values are rescaled to when converting into this type.

        Integer types use their full range, float types the unit interval.
        """
        if self.is_float:
            return 0.0, 1.0
        return self.type_bounds()

    def __str__(self) -> str:
        return self.value


class Scaler:
    """Linear mapping from a source value range to a destination range."""

    def __init__(self, src_min: float, src_max: float, dst_min: float, dst_max: float):
        self.src_min = float(src_min)
        self.src_max = float(src_max)
        self.dst_min = float(dst_min)
        self.dst_max = float(dst_max)

    @property
    def ratio(self) -> float:
        if self.src_max == self.src_min:
            return 0.0
        return (self.dst_max - self.dst_min) / (self.src_max - self.src_min)

    def scale(self, values: np.ndarray) -> np.ndarray:
        values = np.asarray(values, dtype=np.float64)
        return (values - self.src_min) * self.ratio + self.dst_min

    def __repr__(self) -> str:
        return (
            f"Scaler([{self.src_min}, {self.src_max}] -> [{self.dst_min}, {self.dst_max}])"
        )


def cast(values: np.ndarray, data_type: DataType) -> np.ndarray:
    """Cast an array to ``data_type``, saturating instead of wrapping around.

    Args:
        values: Array of any numeric dtype
        data_type: Destination type

    Returns:
        New array of ``data_type.dtype``
    """
    values = np.asarray(values)
    if values.dtype == data_type.dtype:
        return values.copy()
    if data_type.is_float:
        return values.astype(data_type.dtype)

    low, high = data_type.type_bounds()
    # Float sources get rounded, integer sources only need clipping
    is_float_source = np.issubdtype(values.dtype, np.floating)
    values = values.astype(np.float64)
    if is_float_source:
        values = np.rint(np.nan_to_num(values, nan=0.0))
    return np.clip(values, low, high).astype(data_type.dtype)
