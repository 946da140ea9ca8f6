"""Type conversion, extraction and resizing of sequences."""

import math
import threading
from typing import Callable, List, Optional, Sequence as Seq, Tuple

import numpy as np
from loguru import logger

from bioseq.annotation.roi import ROI
from bioseq.exceptions import OperationCancelled, processing_plane
from bioseq.plane import Align, Plane, ResampleFilter
from bioseq.region import Region5D
from bioseq.sequence import Sequence, require_sequence
from bioseq.types import DataType, Scaler, cast

Progress = Callable[[int, int], None]
Point5D = Tuple[float, float, float, float, float]


def _check_cancel(cancel: Optional[threading.Event], index: int) -> None:
    if cancel is not None and cancel.is_set():
        logger.info(f"Operation cancelled after plane {index - 1}")
        raise OperationCancelled(index - 1)


def _derived(source: Sequence, suffix: Optional[str], metadata=None) -> Sequence:
    name = f"{source.name} ({suffix})" if suffix else source.name
    return Sequence(name, metadata if metadata is not None else source.metadata.copy())


# ---------------- Type conversion ----------------


def convert_type(
    source: Sequence,
    data_type: DataType,
    scalers: Optional[Seq[Optional[Scaler]]] = None,
    progress: Optional[Progress] = None,
    cancel: Optional[threading.Event] = None,
) -> Sequence:
    """Convert every plane of ``source`` to ``data_type``.

    Args:
        source: Sequence to convert
        data_type: Destination type
        scalers: Per channel scaler applied before the saturating cast, None to
            only cast
        progress: Called with (plane index, plane count) for each plane
        cancel: Checked before each plane

    Returns:
        New Sequence named "<name> (<type>)", with the channel names and colormaps
        of ``source``
    """
    require_sequence(source, "source")
    result = _derived(source, str(data_type))
    keys = source.keys()
    with result.updating():
        if source.data_type is not None:
            result.presize(source.size_x, source.size_y, source.size_c, data_type)
        for index, (t, z) in enumerate(keys):
            _check_cancel(cancel, index)
            with processing_plane(index):
                if progress is not None:
                    progress(index, len(keys))
                result.set_image(t, z, source.get_image(t, z).convert(data_type, scalers))
    return result


def convert_to_type(
    source: Sequence,
    data_type: DataType,
    rescale: bool = False,
    use_data_bounds: bool = False,
    progress: Optional[Progress] = None,
    cancel: Optional[threading.Event] = None,
) -> Sequence:
    """Convert ``source`` to ``data_type``, optionally rescaling the values.

    Args:
        source: Sequence to convert
        data_type: Destination type
        rescale: Map each channel's source range onto the default range of
            ``data_type`` instead of only clipping the values
        use_data_bounds: Source range is the observed data range, otherwise
            the range of the source type
        progress: Called with (plane index, plane count) for each plane
        cancel: Checked before each plane

    Returns:
        New converted Sequence
    """
    require_sequence(source, "source")
    if not rescale:
        return convert_type(source, data_type, None, progress, cancel)

    dst_min, dst_max = data_type.default_bounds()
    scalers = []
    for c in range(source.size_c):
        if use_data_bounds:
            src_min, src_max = source.channel_bounds(c)
        else:
            src_min, src_max = source.channel_type_bounds(c)
        scalers.append(Scaler(src_min, src_max, dst_min, dst_max))
    logger.debug(f"Converting {source.name!r} to {data_type} with {scalers}")
    return convert_type(source, data_type, scalers, progress, cancel)


# ---------------- Extraction ----------------


def extract_channels(source: Sequence, channels: Seq[int]) -> Sequence:
    """New sequence with the listed channels of ``source``, in the listed order.

    Channels outside of ``source`` are ignored.
    """
    require_sequence(source, "source")
    keep = [c for c in channels if 0 <= c < source.size_c]
    if len(keep) == 1:
        suffix = source.channel_name(keep[0])
    elif keep:
        suffix = "channels " + " ".join(str(c) for c in keep)
    else:
        suffix = None

    result = _derived(source, suffix, source.metadata.keep_channels(keep))
    if not keep:
        return result
    with result.updating():
        result.presize(source.size_x, source.size_y, len(keep), source.data_type)
        for t, z in source.keys():
            result.set_image(t, z, source.get_image(t, z).extract_channels(keep))
    return result


def extract_channel(source: Sequence, c: int) -> Sequence:
    return extract_channels(source, [c])


def extract_slice(source: Sequence, z: int) -> Sequence:
    """Single slice sequence holding slice ``z`` of every frame."""
    require_sequence(source, "source")
    result = _derived(source, f"slice {z}")
    if not 0 <= z < source.size_z:
        return result
    with result.updating():
        for t in range(source.size_t):
            plane = source.get_image(t, z)
            if plane is not None:
                result.set_image(t, 0, plane.copy())
    return result


def extract_frame(source: Sequence, t: int) -> Sequence:
    """Single frame sequence holding frame ``t``."""
    require_sequence(source, "source")
    result = _derived(source, f"frame {t}")
    if not 0 <= t < source.size_t:
        return result
    with result.updating():
        for z, plane in source.get_volume(t).items():
            result.set_image(0, z, plane.copy())
    return result


def _clamped(source: Sequence, region: Region5D) -> List[Tuple[int, int]]:
    return [
        region.clamp("x", source.size_x),
        region.clamp("y", source.size_y),
        region.clamp("z", source.size_z),
        region.clamp("t", source.size_t),
        region.clamp("c", source.size_c),
    ]


def get_sub_sequence(source: Sequence, region: Region5D) -> Sequence:
    """Copy the part of ``source`` inside ``region`` into a new sequence.

    The region is clamped to the source, the result starts at index 0 on every
    axis and its position / time stamp are moved by the cropped offset.
    """
    require_sequence(source, "source")
    (x0, x1), (y0, y1), (z0, z1), (t0, t1), (c0, c1) = _clamped(source, region)

    metadata = source.metadata.keep_channels(list(range(c0, c1)))
    metadata.position_x += x0 * metadata.pixel_size_x
    metadata.position_y += y0 * metadata.pixel_size_y
    metadata.position_z += z0 * metadata.pixel_size_z
    metadata.time_stamp += int(round(source.position_t_offset(t0) * 1000))
    result = Sequence(f"{source.name} (crop)", metadata)

    if x1 <= x0 or y1 <= y0 or c1 <= c0:
        return result
    with result.updating():
        for t in range(t0, t1):
            for z in range(z0, z1):
                plane = source.get_image(t, z)
                if plane is not None:
                    crop = plane.sub_image(x0, y0, x1 - x0, y1 - y0, c0, c1 - c0)
                    result.set_image(t - t0, z - z0, crop)
    return result


def get_sub_sequence_roi(
    source: Sequence,
    roi: ROI,
    null_value: float = math.nan,
    progress: Optional[Progress] = None,
    cancel: Optional[threading.Event] = None,
) -> Sequence:
    """Crop ``source`` to the bounds of ``roi``.

    Args:
        source: Sequence to crop
        roi: Region of interest
        null_value: Value written to the pixels outside of the ROI. NaN keeps
            the original pixels.
        progress: Called with (plane index, plane count) for each masked plane
        cancel: Checked before each masked plane

    Returns:
        New cropped Sequence
    """
    require_sequence(source, "source")
    region = roi.bounds5d()
    result = get_sub_sequence(source, region)
    if math.isnan(null_value) or result.is_empty():
        return result

    (x0, x1), (y0, y1), (z0, _), (t0, _), (c0, _) = _clamped(source, region)
    fill = cast(np.asarray(null_value, dtype=np.float64), result.data_type)
    keys = result.keys()
    with result.updating():
        for index, (t, z) in enumerate(keys):
            _check_cancel(cancel, index)
            with processing_plane(index):
                if progress is not None:
                    progress(index, len(keys))
                data = result.get_image(t, z).data.copy()
                for c in range(data.shape[0]):
                    inside = roi.mask(x0, y0, x1 - x0, y1 - y0, z=z + z0, t=t + t0, c=c + c0)
                    data[c][~inside] = fill
                result.set_image(t, z, Plane(data))
    return result


# ---------------- Copy / resize ----------------


def get_copy(
    source: Sequence,
    copy_rois: bool = False,
    copy_overlays: bool = False,
    name_suffix: bool = True,
) -> Sequence:
    """Deep copy of the planes and metadata of ``source``.

    ROIs and overlays are shared with ``source``, not duplicated.
    """
    require_sequence(source, "source")
    result = _derived(source, "copy" if name_suffix else None)
    with result.updating():
        result.copy_data_from(source)
        if copy_rois:
            for roi in source.rois:
                result.add_roi(roi)
        if copy_overlays:
            for overlay in source.overlays:
                result.add_overlay(overlay)
    return result


def scale(
    source: Sequence,
    width: int,
    height: int,
    resize_content: bool = True,
    x_align: Align = Align.CENTER,
    y_align: Align = Align.CENTER,
    resample: ResampleFilter = ResampleFilter.BILINEAR,
    progress: Optional[Progress] = None,
    cancel: Optional[threading.Event] = None,
) -> Sequence:
    """Resize every plane of ``source`` to ``width`` x ``height``.

    When the content is resized, the pixel size is adjusted so the physical
    extent of the image is unchanged.
    """
    require_sequence(source, "source")
    result = _derived(source, "resized")
    if resize_content and source.size_x and source.size_y:
        result.metadata.pixel_size_x *= source.size_x / width
        result.metadata.pixel_size_y *= source.size_y / height

    keys = source.keys()
    with result.updating():
        for index, (t, z) in enumerate(keys):
            _check_cancel(cancel, index)
            with processing_plane(index):
                if progress is not None:
                    progress(index, len(keys))
                plane = source.get_image(t, z).scale(
                    width, height, resize_content, x_align, y_align, resample
                )
                result.set_image(t, z, plane)
    return result


def rotate(
    source: Sequence,
    x_origin: Optional[float] = None,
    y_origin: Optional[float] = None,
    angle: float = 0.0,
    resample: ResampleFilter = ResampleFilter.BILINEAR,
    progress: Optional[Progress] = None,
    cancel: Optional[threading.Event] = None,
) -> Sequence:
    """Rotate every plane of ``source`` around (``x_origin``, ``y_origin``).

    Args:
        source: Sequence to rotate
        x_origin: X of the rotation center, the image center if None
        y_origin: Y of the rotation center, the image center if None
        angle: Angle in radians, clockwise as displayed
        resample: Filter used to resample the rotated content
        progress: Called with (plane index, plane count) for each plane
        cancel: Checked before each plane

    Returns:
        New Sequence named "<name> (rotated)" of the same size, with the channel
        names and colormaps of ``source``. Pixels rotated in from outside the
        source are zero.
    """
    require_sequence(source, "source")
    if x_origin is None:
        x_origin = source.size_x / 2
    if y_origin is None:
        y_origin = source.size_y / 2
    result = _derived(source, "rotated")

    keys = source.keys()
    with result.updating():
        for index, (t, z) in enumerate(keys):
            _check_cancel(cancel, index)
            with processing_plane(index):
                if progress is not None:
                    progress(index, len(keys))
                plane = source.get_image(t, z).rotate(x_origin, y_origin, angle, resample)
                result.set_image(t, z, plane)
    return result


def convert_point(point: Point5D, source: Sequence, destination: Sequence) -> Point5D:
    """Map a (x, y, z, t, c) point from ``source`` to ``destination`` coordinates.

    Spatial axes go through the position and pixel size, time through the time
    stamp and frame interval. The channel is unchanged.
    """
    require_sequence(source, "source")
    require_sequence(destination, "destination")
    x, y, z, t, c = point
    src, dst = source.metadata, destination.metadata

    def spatial(value: float, axis: str) -> float:
        physical = value * getattr(src, f"pixel_size_{axis}") + getattr(src, f"position_{axis}")
        return (physical - getattr(dst, f"position_{axis}")) / getattr(dst, f"pixel_size_{axis}")

    seconds = t * src.time_interval + (src.time_stamp - dst.time_stamp) / 1000
    return spatial(x, "x"), spatial(y, "y"), spatial(z, "z"), seconds / dst.time_interval, c
