"""
Structural editing of a sequence along T and Z.

Every function runs in one transaction of the edited sequence, so listeners get
a single notification per call. Indices outside of the sequence are silently
ignored.
"""

from typing import Optional

from loguru import logger

from bioseq.plane import Plane
from bioseq.sequence import Sequence, require_sequence


def _copy_or_zero(seq: Sequence, plane: Optional[Plane]) -> Plane:
    return plane.copy() if plane is not None else seq.new_plane()


# ---------------- Move ----------------


def move_t(seq: Sequence, t: int, new_t: int) -> None:
    """Move frame ``t`` to ``new_t``, replacing what was there.

    The planes are written at the destination before the source is removed.
    """
    require_sequence(seq)
    if t < 0 or t >= seq.size_t or new_t < 0 or t == new_t:
        return

    with seq.updating():
        volume = seq.get_volume(t)
        seq.remove_all_images(new_t)
        if volume:
            for z, plane in volume.items():
                seq.set_image(new_t, z, plane)
            seq.remove_all_images(t)


def move_z(seq: Sequence, z: int, new_z: int) -> None:
    """Move slice ``z`` to ``new_z`` in every frame, replacing what was there."""
    require_sequence(seq)
    if z < 0 or z >= seq.size_z or new_z < 0 or z == new_z:
        return

    with seq.updating():
        for t in range(seq.size_t):
            plane = seq.get_image(t, z)
            if plane is None:
                seq.remove_image(t, new_z)
            else:
                seq.set_image(t, new_z, plane)
                seq.remove_image(t, z)


def move_t_range(seq: Sequence, start: int, end: int, offset: int) -> None:
    """Move frames ``start..end`` (inclusive) by ``offset``."""
    require_sequence(seq)
    with seq.updating():
        # Destination of one move may be the source of the next one
        if offset > 0:
            for t in range(end, start - 1, -1):
                move_t(seq, t, t + offset)
        elif offset < 0:
            for t in range(start, end + 1):
                move_t(seq, t, t + offset)


def move_z_range(seq: Sequence, start: int, end: int, offset: int) -> None:
    """Move slices ``start..end`` (inclusive) by ``offset``."""
    require_sequence(seq)
    with seq.updating():
        if offset > 0:
            for z in range(end, start - 1, -1):
                move_z(seq, z, z + offset)
        elif offset < 0:
            for z in range(start, end + 1):
                move_z(seq, z, z + offset)


# ---------------- Insert ----------------


def add_t(seq: Sequence, t: int, num: int, copy_last: int = 0) -> None:
    """Insert ``num`` frames at position ``t``.

    Frames at ``t`` and after are shifted by ``num`` first. The new frames are
    zero filled if ``copy_last`` is 0, otherwise they cyclically repeat the
    ``min(t, copy_last)`` frames preceding ``t``.

    Args:
        seq: Sequence to edit
        t: Insert position, in ``[0, size_t]``
        num: Number of frames to insert
        copy_last: Number of preceding frames to duplicate
    """
    require_sequence(seq)
    size_t = seq.size_t
    if num <= 0 or t < 0 or t > size_t:
        return

    with seq.updating():
        move_t_range(seq, t, size_t - 1, num)

        duplicate = min(t, copy_last)
        base = t - duplicate
        size_z = seq.size_z
        if seq.data_type is None:
            return
        for i in range(num):
            if duplicate > 0:
                source = seq.get_volume(base + (i % duplicate))
                for z in range(size_z):
                    seq.set_image(t + i, z, _copy_or_zero(seq, source.get(z)))
            else:
                for z in range(size_z):
                    seq.set_image(t + i, z, seq.new_plane())


def add_z(seq: Sequence, z: int, num: int, copy_last: int = 0) -> None:
    """Insert ``num`` slices at position ``z`` in every frame.

    Same fill policy as :func:`add_t`, applied along Z.
    """
    require_sequence(seq)
    size_z = seq.size_z
    if num <= 0 or z < 0 or z > size_z:
        return

    with seq.updating():
        move_z_range(seq, z, size_z - 1, num)

        duplicate = min(z, copy_last)
        base = z - duplicate
        if seq.data_type is None:
            return
        for t in range(seq.size_t):
            for i in range(num):
                if duplicate > 0:
                    plane = _copy_or_zero(seq, seq.get_image(t, base + (i % duplicate)))
                else:
                    plane = seq.new_plane()
                seq.set_image(t, z + i, plane)


def append_t(seq: Sequence, num: int, copy_last: int = 0) -> None:
    require_sequence(seq)
    add_t(seq, seq.size_t, num, copy_last)


def append_z(seq: Sequence, num: int, copy_last: int = 0) -> None:
    require_sequence(seq)
    add_z(seq, seq.size_z, num, copy_last)


# ---------------- Swap ----------------


def swap_t(seq: Sequence, t1: int, t2: int) -> None:
    """Exchange frames ``t1`` and ``t2``. An empty frame empties its destination."""
    require_sequence(seq)
    size_t = seq.size_t
    if not (0 <= t1 < size_t and 0 <= t2 < size_t) or t1 == t2:
        return

    with seq.updating():
        volume1 = seq.get_volume(t1)
        volume2 = seq.get_volume(t2)
        seq.remove_all_images(t1)
        seq.remove_all_images(t2)
        for z, plane in volume1.items():
            seq.set_image(t2, z, plane)
        for z, plane in volume2.items():
            seq.set_image(t1, z, plane)


def swap_z(seq: Sequence, z1: int, z2: int) -> None:
    """Exchange slices ``z1`` and ``z2`` in every frame."""
    require_sequence(seq)
    size_z = seq.size_z
    if not (0 <= z1 < size_z and 0 <= z2 < size_z) or z1 == z2:
        return

    with seq.updating():
        for t in range(seq.size_t):
            plane1 = seq.get_image(t, z1)
            plane2 = seq.get_image(t, z2)
            # None removes the destination
            seq.set_image(t, z1, plane2)
            seq.set_image(t, z2, plane1)


# ---------------- Remove ----------------


def remove_t(seq: Sequence, t: int) -> None:
    """Remove frame ``t``, leaving a hole."""
    require_sequence(seq)
    if 0 <= t < seq.size_t:
        seq.remove_all_images(t)


def remove_z(seq: Sequence, z: int) -> None:
    """Remove slice ``z`` of every frame, leaving a hole."""
    require_sequence(seq)
    if not 0 <= z < seq.size_z:
        return
    with seq.updating():
        for t in range(seq.size_t):
            seq.remove_image(t, z)


def remove_t_and_shift(seq: Sequence, t: int) -> None:
    """Remove frame ``t`` and shift the following frames down by one."""
    require_sequence(seq)
    size_t = seq.size_t
    if not 0 <= t < size_t:
        return
    with seq.updating():
        remove_t(seq, t)
        move_t_range(seq, t + 1, size_t - 1, -1)


def remove_z_and_shift(seq: Sequence, z: int) -> None:
    """Remove slice ``z`` and shift the following slices down by one."""
    require_sequence(seq)
    size_z = seq.size_z
    if not 0 <= z < size_z:
        return
    with seq.updating():
        remove_z(seq, z)
        move_z_range(seq, z + 1, size_z - 1, -1)


# ---------------- Reorder ----------------


def _staged(seq: Sequence) -> Sequence:
    # Planes are shared, not copied: they are never mutated in place
    staging = Sequence(f"{seq.name} (staging)")
    with staging.updating():
        for t, z in seq.keys():
            staging.set_image(t, z, seq.get_image(t, z))
    return staging


def reverse_t(seq: Sequence) -> None:
    """Mirror the frame order."""
    require_sequence(seq)
    with seq.updating():
        size_t = seq.size_t
        staging = _staged(seq)
        seq.remove_all_images()
        for t, z in staging.keys():
            seq.set_image(size_t - 1 - t, z, staging.get_image(t, z))
        staging.remove_all_images()


def reverse_z(seq: Sequence) -> None:
    """Mirror the slice order of every frame."""
    require_sequence(seq)
    with seq.updating():
        size_z = seq.size_z
        staging = _staged(seq)
        seq.remove_all_images()
        for t, z in staging.keys():
            seq.set_image(t, size_z - 1 - z, staging.get_image(t, z))
        staging.remove_all_images()


def convert_to_time(seq: Sequence) -> None:
    """Lay every plane (T then Z order) out along T."""
    require_sequence(seq)
    with seq.updating():
        images = seq.all_images()
        seq.remove_all_images()
        for t, plane in enumerate(images):
            seq.set_image(t, 0, plane)


def convert_to_stack(seq: Sequence) -> None:
    """Lay every plane (T then Z order) out along Z."""
    require_sequence(seq)
    with seq.updating():
        images = seq.all_images()
        seq.remove_all_images()
        for z, plane in enumerate(images):
            seq.set_image(0, z, plane)


def adjust_zt(seq: Sequence, new_size_z: int, new_size_t: int, reverse_order: bool = False) -> None:
    """Re-split the planes into ``new_size_z`` slices by ``new_size_t`` frames.

    Planes are read in T then Z order. Positions beyond the existing planes
    get zero filled planes.

    Args:
        seq: Sequence to edit
        new_size_z: Number of slices per frame
        new_size_t: Number of frames
        reverse_order: Planes were acquired Z-major (all frames of a slice
            before the next slice)
    """
    require_sequence(seq)
    size_z = seq.size_z
    size_t = seq.size_t
    if size_z == 0 or new_size_z <= 0 or new_size_t <= 0:
        return

    with seq.updating():
        staging = _staged(seq)
        seq.remove_all_images()
        for t in range(new_size_t):
            for z in range(new_size_z):
                if reverse_order:
                    index = z * new_size_t + t
                else:
                    index = t * new_size_z + z
                t_origin, z_origin = divmod(index, size_z)
                if t_origin < size_t:
                    seq.set_image(t, z, staging.get_image(t_origin, z_origin))
                else:
                    seq.set_image(t, z, seq.new_plane())
        staging.remove_all_images()


def remove_channel(seq: Sequence, c: int) -> None:
    """Remove channel ``c`` from every plane and from the channel metadata."""
    require_sequence(seq)
    size_c = seq.size_c
    if not 0 <= c < size_c:
        return
    if size_c == 1:
        logger.warning(f"Cannot remove the only channel of {seq.name!r}")
        return

    keep = [i for i in range(size_c) if i != c]
    with seq.updating():
        planes = [(t, z, seq.get_image(t, z).extract_channels(keep)) for t, z in seq.keys()]
        channels = seq.metadata.keep_channels(keep).channels
        seq.remove_all_images()
        seq.presize(seq.size_x, seq.size_y, len(keep), seq.data_type)
        seq.metadata.channels = channels
        for t, z, plane in planes:
            seq.set_image(t, z, plane)
