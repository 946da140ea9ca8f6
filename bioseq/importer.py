"""Loading sequences, metadata and thumbnails through bioio."""

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol

import numpy as np
from bioio import BioImage
from loguru import logger
from PIL import Image

from bioseq.config import config
from bioseq.exceptions import OperationCancelled, processing_plane
from bioseq.plane import Plane
from bioseq.sequence import Sequence
from bioseq.types import DataType

Reader = Callable[[Any], Any]


class Importer(Protocol):
    """Open -> read -> close access to the series of an image resource."""

    def open(self, identifier: Any, series: int = 0) -> bool: ...

    def get_thumbnail(self, series: int) -> Plane: ...

    def close(self) -> None: ...


@dataclass
class SeriesMetadata:
    """Dimensions and calibration of one series, known before loading pixels."""

    size_x: int
    size_y: int
    size_z: int
    size_t: int
    size_c: int
    data_type: DataType
    pixel_size_x: Optional[float] = None
    pixel_size_y: Optional[float] = None
    pixel_size_z: Optional[float] = None


def read_series_metadata(image) -> SeriesMetadata:
    """Read the metadata of the current scene of a ``BioImage``."""
    dims = dict(zip(image.dims.order, image.dims.shape))
    pixel_sizes = image.physical_pixel_sizes
    return SeriesMetadata(
        size_x=dims.get("X", 1),
        size_y=dims.get("Y", 1),
        size_z=dims.get("Z", 1),
        size_t=dims.get("T", 1),
        size_c=dims.get("C", 1),
        data_type=DataType.from_dtype(image.dtype),
        pixel_size_x=pixel_sizes.X,
        pixel_size_y=pixel_sizes.Y,
        pixel_size_z=pixel_sizes.Z,
    )


def _display_name(identifier: Any) -> str:
    return Path(identifier).name if isinstance(identifier, (str, Path)) else "array"


class BioioImporter:
    """
    :class:`Importer` backed by ``bioio.BioImage``.

    :param reader: Callable opening an identifier, ``BioImage`` by default
    :param thumbnail_size: Maximum thumbnail edge length, defaults to ``config.thumbnail_size``
    """

    def __init__(self, reader: Reader = BioImage, thumbnail_size: Optional[int] = None):
        self._reader = reader
        self.thumbnail_size = thumbnail_size or config.thumbnail_size
        self._image = None
        self._name = ""

    @property
    def image(self):
        if self._image is None:
            raise RuntimeError("No image resource open")
        return self._image

    @property
    def series_count(self) -> int:
        return len(self.image.scenes)

    def open(self, identifier: Any, series: int = 0) -> bool:
        """Open ``identifier`` and select ``series``.

        :return: False if the resource can't be read or has no such series
        """
        self.close()
        name = _display_name(identifier)
        try:
            image = self._reader(identifier)
        except Exception as e:
            logger.warning(f"{name} - cannot open: {e}")
            return False

        num_scenes = len(image.scenes)
        if not 0 <= series < num_scenes:
            logger.warning(f"{name} - no series {series} ({num_scenes} available)")
            return False
        image.set_scene(series)
        logger.debug(f"{name} - opened series {series}/{num_scenes}")
        self._image = image
        self._name = name
        return True

    def metadata(self) -> SeriesMetadata:
        return read_series_metadata(self.image)

    def get_plane(self, t: int, z: int) -> Plane:
        """Read the (C, Y, X) plane at (t, z) of the open series."""
        lazy_data = self.image.get_image_dask_data("CYX", T=t, Z=z)
        return Plane(np.asarray(lazy_data.compute()))

    def get_thumbnail(self, series: int) -> Plane:
        """Downsampled plane of ``series``: middle slice, first frame, up to 3 channels."""
        img = self.image
        img.set_scene(series)

        # Use the lowest resolution available for fastest loading
        resolution_levels = img.resolution_levels
        if len(resolution_levels) > 1:
            img.set_resolution_level(resolution_levels[-1])
            logger.debug(f"{self._name} - using resolution level: {resolution_levels[-1]}")

        try:
            dim_dict = dict(zip(img.dims.order, img.dims.shape))
            kwargs = {"Z": dim_dict.get("Z", 1) // 2, "T": 0}
            data = np.asarray(img.get_image_dask_data("CYX", **kwargs)[:3].compute())
        finally:
            if len(resolution_levels) > 1:
                img.set_resolution_level(resolution_levels[0])

        plane = Plane(data)
        # Resize maintaining aspect ratio
        ratio = min(1.0, self.thumbnail_size / max(plane.size_x, plane.size_y))
        width = max(1, round(plane.size_x * ratio))
        height = max(1, round(plane.size_y * ratio))
        return plane.scale(width, height)

    def close(self) -> None:
        self._image = None


def load_sequence(
    identifier: Any,
    series: int = 0,
    reader: Reader = BioImage,
    progress: Optional[Callable[[int, int], None]] = None,
    cancel: Optional[threading.Event] = None,
) -> Optional[Sequence]:
    """Load one series into a new :class:`~bioseq.sequence.Sequence`.

    The sequence is sized from the series metadata, then filled frame by frame.

    Args:
        identifier: Path, URI or array accepted by ``reader``
        series: Series (scene) index
        reader: Callable opening ``identifier``
        progress: Called with (plane index, plane count) for each plane
        cancel: Checked before each plane

    Returns:
        The sequence, or None if the resource or series can't be opened

    Raises:
        OperationCancelled: if ``cancel`` was set
        OperationFailed: if reading a plane raised, chained to the original error
    """
    importer = BioioImporter(reader)
    if not importer.open(identifier, series):
        return None

    try:
        meta = importer.metadata()
        name = _display_name(identifier)
        if series:
            name = f"{name} - series {series}"
        logger.debug(
            f"{name} - T={meta.size_t}, C={meta.size_c}, Z={meta.size_z}, "
            f"Y={meta.size_y}, X={meta.size_x}, type={meta.data_type}"
        )

        seq = Sequence.from_metadata(meta, name)
        total = meta.size_t * meta.size_z
        with seq.updating():
            index = 0
            for t in range(meta.size_t):
                for z in range(meta.size_z):
                    if cancel is not None and cancel.is_set():
                        raise OperationCancelled(index - 1)
                    with processing_plane(index):
                        if progress is not None:
                            progress(index, total)
                        seq.set_image(t, z, importer.get_plane(t, z))
                    index += 1
        return seq
    finally:
        importer.close()


def load_thumbnails(
    importer: Importer,
    identifier: Any,
    count: int,
    placeholder: Optional[Plane] = None,
) -> List[Plane]:
    """Best-effort thumbnails of the first ``count`` series.

    A series that can't be opened or rendered (including when memory runs out)
    gets ``placeholder`` instead, errors are logged and never raised.
    """
    if placeholder is None:
        size = config.thumbnail_size
        placeholder = Plane.zeros(size, size, 1, DataType.UINT8)

    thumbnails = []
    for series in range(count):
        thumbnail = placeholder
        try:
            if importer.open(identifier, series):
                thumbnail = importer.get_thumbnail(series)
        except MemoryError:
            logger.warning(f"Not enough memory for the thumbnail of series {series}")
        except Exception as e:
            logger.warning(f"Failed to create the thumbnail of series {series}: {e}")
        finally:
            importer.close()
        thumbnails.append(thumbnail)
    return thumbnails


def render_preview(plane: Plane, max_size: int = 512) -> Image.Image:
    """Render a plane as an 8 bit Pillow image (first 3 channels as RGB)."""
    if plane.size_c >= 3:
        # CYX -> YXC
        data = np.moveaxis(plane.data[:3], 0, -1)
    else:
        data = plane.data[0]

    # Normalize data to 0-255 range
    if data.dtype != np.uint8:
        data_min = float(np.min(data))
        data_max = float(np.max(data))
        if data_max > data_min:
            data = ((data.astype(np.float64) - data_min) / (data_max - data_min) * 255).astype(
                np.uint8
            )
        else:
            data = np.zeros_like(data, dtype=np.uint8)

    pil_image = Image.fromarray(np.ascontiguousarray(data))
    pil_image.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
    return pil_image
