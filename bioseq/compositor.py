"""
Merge several sequences along C, Z or T.

The output extent is the maximum of the sources on the axes that are not
concatenated and the sum of the sources on the concatenated one. Sources
smaller than the output in X/Y are resized (``rescale=True``) or placed on a
zero canvas at ``align``.
"""

import threading
from typing import Callable, List, Optional, Sequence as Seq, Tuple

from loguru import logger

from bioseq.exceptions import OperationCancelled, processing_plane
from bioseq.plane import Align, Plane, ResampleFilter
from bioseq.sequence import ChannelInfo, Sequence, require_sequence
from bioseq.types import DataType

Progress = Callable[[int, int], None]


def get_max_dim(sequences: Seq[Sequence], axis: str) -> int:
    """Largest size of ``axis`` ("x", "y", "c", "z" or "t") over ``sequences``."""
    return max((getattr(seq, f"size_{axis}") for seq in sequences), default=0)


def _common_type(sequences: Seq[Sequence]) -> Optional[DataType]:
    if not sequences:
        raise ValueError("At least one source sequence is required")
    for i, seq in enumerate(sequences):
        require_sequence(seq, f"sequences[{i}]")
    types = {seq.data_type for seq in sequences if seq.data_type is not None}
    if len(types) > 1:
        names = ", ".join(sorted(str(t) for t in types))
        raise ValueError(f"Cannot merge sequences of different data types: {names}")
    return types.pop() if types else None


def _fit(
    plane: Plane,
    size_x: int,
    size_y: int,
    size_c: int,
    rescale: bool,
    resample: ResampleFilter,
    align: Align,
) -> Plane:
    if (plane.size_x, plane.size_y) != (size_x, size_y):
        plane = plane.scale(size_x, size_y, rescale, align, align, resample)
    if plane.size_c < size_c:
        plane = plane.add_channels(size_c - plane.size_c)
    return plane


def _search_depth_first(seq: Sequence, t: int, z: int, c: Optional[int] = None) -> Optional[Plane]:
    """Nearest previous plane, searching previous slices then previous frames.

    Previous slices are only searched when ``z`` is beyond the source depth.
    """

    def get(t_: int, z_: int) -> Optional[Plane]:
        plane = seq.get_image(t_, z_)
        if plane is None or c is None:
            return plane
        return plane.extract_channels([c]) if c < plane.size_c else None

    plane = get(t, z)
    if plane is not None:
        return plane
    if z >= seq.size_z:
        for prev_z in range(z - 1, -1, -1):
            plane = get(t, prev_z)
            if plane is not None:
                return plane
    for prev_t in range(t - 1, -1, -1):
        plane = get(prev_t, z)
        if plane is not None:
            return plane
    return None


def _search_time_first(seq: Sequence, t: int, z: int) -> Optional[Plane]:
    """Nearest previous plane, searching previous frames then previous slices.

    Previous frames are only searched when ``t`` is beyond the source duration.
    """
    plane = seq.get_image(t, z)
    if plane is not None:
        return plane
    if t >= seq.size_t:
        for prev_t in range(t - 1, -1, -1):
            plane = seq.get_image(prev_t, z)
            if plane is not None:
                return plane
    for prev_z in range(z - 1, -1, -1):
        plane = seq.get_image(t, prev_z)
        if plane is not None:
            return plane
    return None


def _locate(sizes: List[int], index: int, interlaced: bool) -> Optional[Tuple[int, int]]:
    """Map an output index of the concatenated axis to (source, source index).

    Sequential addressing takes the sources block after block, interlaced
    addressing takes one index of each source in turn, skipping exhausted ones.
    """
    if interlaced:
        remaining = index
        for source_index in range(max(sizes, default=0)):
            for source, size in enumerate(sizes):
                if source_index < size:
                    if remaining == 0:
                        return source, source_index
                    remaining -= 1
        return None

    remaining = index
    for source, size in enumerate(sizes):
        if remaining < size:
            return source, remaining
        remaining -= size
    return None


def _merged_sequence(first: Sequence, suffix: str) -> Sequence:
    return Sequence(f"{first.name} ({suffix})", first.metadata.copy())


def _check_cancel(cancel: Optional[threading.Event], index: int) -> None:
    if cancel is not None and cancel.is_set():
        logger.info(f"Merge cancelled after plane {index - 1}")
        raise OperationCancelled(index - 1)


def concat_c(
    sequences: Seq[Sequence],
    channels: Optional[Seq[int]] = None,
    fill_empty: bool = True,
    rescale: bool = False,
    resample: ResampleFilter = ResampleFilter.BILINEAR,
    align: Align = Align.CENTER,
    progress: Optional[Progress] = None,
    cancel: Optional[threading.Event] = None,
) -> Sequence:
    """Merge sequences along C.

    Args:
        sequences: Sources, in output channel order
        channels: Channel taken from each source (same length as
            ``sequences``). A source may be listed several times to take several
            of its channels. If None, every channel of every source is taken.
        fill_empty: Replace a missing plane by the nearest previous one
        rescale: Resample sources to the output X/Y size instead of padding them
        resample: Filter used when ``rescale`` is True
        align: Anchor of padded sources
        progress: Called with (plane index, plane count) for each output plane
        cancel: Checked before each output plane

    Returns:
        New Sequence with one channel per (source, channel) pair

    Raises:
        ValueError: if there are no sources, if ``channels`` doesn't match
            ``sequences`` or if the sources have different data types
        OperationCancelled: if ``cancel`` was set
        OperationFailed: if building an output plane raised, chained to the
            original error
    """
    data_type = _common_type(sequences)
    if channels is None:
        pairs = [(seq, c) for seq in sequences for c in range(seq.size_c)]
    else:
        if len(channels) != len(sequences):
            raise ValueError(
                f"Got {len(channels)} channels for {len(sequences)} source sequences"
            )
        pairs = list(zip(sequences, channels))

    size_x = get_max_dim(sequences, "x")
    size_y = get_max_dim(sequences, "y")
    size_z = get_max_dim(sequences, "z")
    size_t = get_max_dim(sequences, "t")
    size_c = len(pairs)

    result = _merged_sequence(sequences[0], "C merge")
    result.metadata.channels = [ChannelInfo() for _ in range(size_c)]
    if data_type is None or size_c == 0:
        return result

    logger.debug(f"Merging {size_c} channels into {size_t}x{size_z} planes of {size_x}x{size_y}")
    total = size_t * size_z
    with result.updating():
        result.presize(size_x, size_y, size_c, data_type)
        index = 0
        for t in range(size_t):
            for z in range(size_z):
                _check_cancel(cancel, index)
                with processing_plane(index):
                    if progress is not None:
                        progress(index, total)

                    parts = []
                    for seq, c in pairs:
                        if fill_empty:
                            part = _search_depth_first(seq, t, z, c)
                        else:
                            plane = seq.get_image(t, z)
                            part = plane.extract_channels([c]) if plane is not None else None
                            if part is not None and part.size_c == 0:
                                part = None
                        if part is None:
                            part = Plane.zeros(size_x, size_y, 1, data_type)
                        parts.append(_fit(part, size_x, size_y, 1, rescale, resample, align))
                    result.set_image(t, z, Plane.from_channels(parts))
                index += 1

        for i, (seq, c) in enumerate(pairs):
            if not seq.is_default_channel_name(c):
                result.set_channel_name(i, seq.channel_name(c))
            if not seq.is_default_colormap(c):
                result.set_colormap(i, seq.colormap(c))

    return result


def _stack_plane(
    sequences: Seq[Sequence],
    sizes: List[int],
    axis: str,
    t: int,
    z: int,
    interlaced: bool,
    fill_empty: bool,
    blank: Plane,
) -> Optional[Plane]:
    """Source plane written at (t, z) of a Z or T merge, None to leave it empty."""
    located = _locate(sizes, z if axis == "z" else t, interlaced)
    if located is None:
        return None
    source, source_index = located
    seq = sequences[source]
    if axis == "z":
        src_t, src_z = t, source_index
        search = _search_depth_first
    else:
        src_t, src_z = source_index, z
        search = _search_time_first
    if not fill_empty:
        return seq.get_image(src_t, src_z)
    plane = search(seq, src_t, src_z)
    return blank if plane is None else plane


def _concat_stack(
    sequences: Seq[Sequence],
    axis: str,
    interlaced: bool,
    fill_empty: bool,
    rescale: bool,
    resample: ResampleFilter,
    align: Align,
    progress: Optional[Progress],
    cancel: Optional[threading.Event],
) -> Sequence:
    data_type = _common_type(sequences)
    size_x = get_max_dim(sequences, "x")
    size_y = get_max_dim(sequences, "y")
    size_c = get_max_dim(sequences, "c")
    if axis == "z":
        size_z = sum(seq.size_z for seq in sequences)
        size_t = get_max_dim(sequences, "t")
        sizes = [seq.size_z for seq in sequences]
    else:
        size_z = get_max_dim(sequences, "z")
        size_t = sum(seq.size_t for seq in sequences)
        sizes = [seq.size_t for seq in sequences]

    result = _merged_sequence(sequences[0], f"{axis.upper()} merge")
    if data_type is None:
        return result

    logger.debug(
        f"Merging {len(sequences)} sequences along {axis.upper()} into {size_t}x{size_z} planes"
    )
    blank = Plane.zeros(size_x, size_y, size_c, data_type)
    total = size_t * size_z
    with result.updating():
        result.presize(size_x, size_y, size_c, data_type)
        index = 0
        for t in range(size_t):
            for z in range(size_z):
                _check_cancel(cancel, index)
                with processing_plane(index):
                    if progress is not None:
                        progress(index, total)
                    plane = _stack_plane(
                        sequences, sizes, axis, t, z, interlaced, fill_empty, blank
                    )
                    if plane is not None:
                        plane = _fit(plane.copy(), size_x, size_y, size_c, rescale, resample, align)
                        result.set_image(t, z, plane)
                index += 1

    return result


def concat_z(
    sequences: Seq[Sequence],
    interlaced: bool = False,
    fill_empty: bool = True,
    rescale: bool = False,
    resample: ResampleFilter = ResampleFilter.BILINEAR,
    align: Align = Align.CENTER,
    progress: Optional[Progress] = None,
    cancel: Optional[threading.Event] = None,
) -> Sequence:
    """Merge sequences along Z.

    With ``interlaced`` the slices are taken one from each source in turn
    (A0, B0, A1, B1, ...), otherwise source after source (A0, A1, ..., B0, ...).

    See :func:`concat_c` for the other arguments.
    """
    return _concat_stack(
        sequences, "z", interlaced, fill_empty, rescale, resample, align, progress, cancel
    )


def concat_t(
    sequences: Seq[Sequence],
    interlaced: bool = False,
    fill_empty: bool = True,
    rescale: bool = False,
    resample: ResampleFilter = ResampleFilter.BILINEAR,
    align: Align = Align.CENTER,
    progress: Optional[Progress] = None,
    cancel: Optional[threading.Event] = None,
) -> Sequence:
    """Merge sequences along T, see :func:`concat_z`."""
    return _concat_stack(
        sequences, "t", interlaced, fill_empty, rescale, resample, align, progress, cancel
    )
