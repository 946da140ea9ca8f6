import threading

import numpy as np
import pytest

from bioseq.compositor import concat_c, concat_t, concat_z, get_max_dim
from bioseq.exceptions import OperationCancelled, OperationFailed
from bioseq.plane import Plane, ResampleFilter
from bioseq.sequence import Sequence
from bioseq.types import DataType


def test_get_max_dim(make_sequence) -> None:
    a = make_sequence(size_t=2, size_z=3)
    b = make_sequence(size_t=4, size_z=1, size_x=9)
    assert get_max_dim([a, b], "t") == 4
    assert get_max_dim([a, b], "z") == 3
    assert get_max_dim([a, b], "x") == 9


def test_concat_z_interlaced(make_sequence, value_at) -> None:
    a = make_sequence(size_t=1, size_z=3, name="A")
    b = make_sequence(size_t=1, size_z=2, name="B")
    for z in range(2):
        b.set_image(0, z, np.full((1, 3, 4), 100 + z, dtype=np.uint8))

    result = concat_z([a, b], interlaced=True)
    assert result.size_z == 5
    assert [value_at(result, 0, z) for z in range(5)] == [1, 100, 2, 101, 3]
    assert result.name == "A (Z merge)"


def test_concat_z_sequential(make_sequence, value_at) -> None:
    a = make_sequence(size_t=1, size_z=2)
    b = make_sequence(size_t=1, size_z=2)
    b.set_image(0, 1, np.full((1, 3, 4), 50, dtype=np.uint8))
    result = concat_z([a, b])
    assert [value_at(result, 0, z) for z in range(4)] == [1, 2, 1, 50]


def test_concat_z_fills_missing_frames(make_sequence, value_at) -> None:
    long = make_sequence(size_t=3, size_z=1)
    short = make_sequence(size_t=1, size_z=1)

    filled = concat_z([long, short])
    assert (filled.size_t, filled.size_z) == (3, 2)
    # short has no frame 1 / 2, its frame 0 is reused
    assert [value_at(filled, t, 1) for t in range(3)] == [1, 1, 1]

    sparse = concat_z([long, short], fill_empty=False)
    assert [value_at(sparse, t, 1) for t in range(3)] == [1, None, None]


def test_concat_t(make_sequence, value_at) -> None:
    a = make_sequence(size_t=2, size_z=2)
    b = make_sequence(size_t=1, size_z=1)
    result = concat_t([a, b])
    assert (result.size_t, result.size_z) == (3, 2)
    assert [value_at(result, t, 0) for t in range(3)] == [1, 11, 1]
    # b has a single slice, the previous one is reused
    assert value_at(result, 2, 1) == 1

    interlaced = concat_t([a, b], interlaced=True)
    assert [value_at(interlaced, t, 0) for t in range(3)] == [1, 1, 11]


def test_concat_c_channel_count_and_names(make_sequence) -> None:
    a = make_sequence(size_c=2, name="A")
    b = make_sequence(size_c=1, name="B")
    a.set_channel_name(1, "GFP")
    a.set_colormap(1, "magenta")

    result = concat_c([a, b])
    assert result.size_c == 3
    assert result.get_image(0, 0).size_c == 3
    assert result.channel_name(1) == "GFP"
    assert result.colormap(1) == "magenta"
    assert result.is_default_channel_name(0)
    assert result.is_default_channel_name(2)
    assert result.name == "A (C merge)"


def test_concat_c_with_selected_channels(make_sequence) -> None:
    a = make_sequence(size_c=3)
    a.set_image(0, 0, np.stack([np.full((3, 4), v, dtype=np.uint8) for v in (5, 6, 7)]))
    result = concat_c([a, a], channels=[2, 0])
    plane = result.get_image(0, 0)
    assert plane.size_c == 2
    assert plane.data[0, 0, 0] == 7 and plane.data[1, 0, 0] == 5

    with pytest.raises(ValueError):
        concat_c([a, a], channels=[0])


def test_concat_c_pads_smaller_sources(make_sequence) -> None:
    big = make_sequence(size_t=2, size_x=6, size_y=6)
    small = make_sequence(size_t=1, size_x=2, size_y=2)

    centered = concat_c([big, small])
    plane = centered.get_image(0, 0)
    assert (plane.size_x, plane.size_y) == (6, 6)
    assert plane.data[1, 2:4, 2:4].tolist() == [[1, 1], [1, 1]]
    assert plane.data[1, 0, 0] == 0
    # frame 1 of the small source is taken from frame 0
    assert centered.get_image(1, 0).data[1, 3, 3] == 1

    rescaled = concat_c([big, small], rescale=True)
    assert (rescaled.get_image(0, 0).data[1] == 1).all()

    empty = concat_c([big, small], fill_empty=False)
    assert not empty.get_image(1, 0).data[1].any()


def test_merge_rejects_bad_sources(make_sequence) -> None:
    with pytest.raises(ValueError):
        concat_z([])
    with pytest.raises(ValueError):
        concat_t([make_sequence(), make_sequence(dtype=np.uint16)])


def test_merge_progress_and_cancel(make_sequence) -> None:
    a = make_sequence(size_t=2, size_z=2)
    b = make_sequence(size_t=2, size_z=2)
    calls = []
    concat_z([a, b], progress=lambda i, n: calls.append((i, n)))
    assert calls == [(i, 8) for i in range(8)]

    cancel = threading.Event()

    def stop_after_three(index, total):
        if index == 2:
            cancel.set()

    with pytest.raises(OperationCancelled) as info:
        concat_z([a, b], progress=stop_after_three, cancel=cancel)
    assert info.value.last_index == 2


def test_merge_of_empty_sequences() -> None:
    result = concat_t([Sequence("empty"), Sequence()])
    assert result.is_empty()
    assert result.name == "empty (T merge)"


def test_rescaled_merge_keeps_float64_values() -> None:
    big, small = Sequence("big"), Sequence("small")
    big.set_image(0, 0, np.full((1, 6, 8), 0.1))
    small.set_image(0, 0, np.full((1, 3, 4), 0.1))

    result = concat_z([big, small], rescale=True, resample=ResampleFilter.NEAREST)
    plane = result.get_image(0, 1)
    assert plane.structure == (8, 6, 1, DataType.FLOAT64)
    assert (plane.data == 0.1).all()


def fail_at_plane(failing_index):
    def progress(index, total):
        if index == failing_index:
            raise RuntimeError("disk full")

    return progress


@pytest.mark.parametrize("merge", [concat_c, concat_z, concat_t])
def test_merge_failure_reports_last_plane(make_sequence, merge) -> None:
    sources = [make_sequence(size_t=2, size_z=2), make_sequence(size_t=2, size_z=2)]
    with pytest.raises(OperationFailed) as info:
        merge(sources, progress=fail_at_plane(2))
    assert info.value.last_index == 1
    assert isinstance(info.value.__cause__, RuntimeError)


def test_merge_failure_while_resampling(make_sequence, monkeypatch) -> None:
    def broken_scale(self, *args, **kwargs):
        raise MemoryError()

    monkeypatch.setattr(Plane, "scale", broken_scale)
    sources = [make_sequence(size_x=4), make_sequence(size_x=2)]
    with pytest.raises(OperationFailed) as info:
        concat_c(sources, rescale=True)
    assert info.value.last_index == -1
    assert isinstance(info.value.__cause__, MemoryError)
