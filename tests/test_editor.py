import numpy as np
import pytest

from bioseq import editor
from bioseq.exceptions import SequenceRequiredError
from bioseq.sequence import Sequence


def _frames(seq, value_at, z=0):
    return [value_at(seq, t, z) for t in range(seq.size_t)]


def _slices(seq, value_at, t=0):
    return [value_at(seq, t, z) for z in range(seq.size_z)]


def test_add_t_duplicates_preceding_frame(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=3)
    editor.add_t(seq, 1, 2, 1)

    assert seq.size_t == 5
    assert _frames(seq, value_at) == [1, 1, 1, 11, 21]
    # Duplicates are independent copies
    assert seq.get_image(1, 0) is not seq.get_image(0, 0)


def test_add_t_wraps_duplication_window(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=3)
    editor.add_t(seq, 2, 3, 5)
    assert _frames(seq, value_at) == [1, 11, 1, 11, 1, 21]


def test_add_t_without_copy_inserts_zero_frames(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=2, size_z=2)
    editor.add_t(seq, 1, 1)
    assert _frames(seq, value_at) == [1, 0, 11]
    assert _slices(seq, value_at, t=1) == [0, 0]


def test_add_then_remove_and_shift_restores(make_sequence) -> None:
    seq = make_sequence(size_t=4, size_z=2)
    original = {key: seq.get_image(*key) for key in seq.keys()}

    editor.add_t(seq, 2, 1)
    editor.remove_t_and_shift(seq, 2)

    assert seq.keys() == list(original)
    for key, plane in original.items():
        assert seq.get_image(*key).equals(plane)


def test_add_z_and_append(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=2, size_z=2)
    editor.add_z(seq, 1, 1, copy_last=1)
    assert _slices(seq, value_at, t=1) == [11, 11, 12]

    editor.append_z(seq, 1)
    editor.append_t(seq, 1)
    assert seq.size_z == 4
    assert seq.size_t == 3
    assert _slices(seq, value_at, t=2) == [0, 0, 0, 0]


def test_move_t_copy_then_delete(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=3)
    editor.move_t(seq, 0, 2)
    assert _frames(seq, value_at) == [None, 11, 1]


def test_move_t_to_itself_is_silent(make_sequence, recorder) -> None:
    seq = make_sequence(size_t=3)
    seq.add_listener(recorder)
    editor.move_t(seq, 1, 1)
    editor.move_t(seq, 7, 0)
    editor.move_t(seq, 0, -1)
    assert recorder == []
    assert seq.size_t == 3


def test_move_range_in_both_directions(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=4)
    editor.move_t_range(seq, 1, 2, 1)
    assert _frames(seq, value_at) == [1, None, 11, 21]

    editor.move_t_range(seq, 2, 3, -1)
    assert _frames(seq, value_at) == [1, 11, 21]


def test_move_z(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=1, size_z=3)
    editor.move_z(seq, 0, 2)
    assert _slices(seq, value_at) == [None, 2, 1]
    editor.move_z_range(seq, 1, 1, -1)
    assert _slices(seq, value_at) == [2, None, 1]


def test_swap_t_is_an_involution(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=3, size_z=2)
    editor.swap_t(seq, 0, 2)
    assert _frames(seq, value_at) == [21, 11, 1]
    editor.swap_t(seq, 0, 2)
    assert _frames(seq, value_at) == [1, 11, 21]


def test_swap_with_absent_side(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=2, size_z=3)
    seq.remove_image(0, 2)
    editor.swap_z(seq, 0, 2)
    assert _slices(seq, value_at, t=0) == [None, 2, 1]
    assert _slices(seq, value_at, t=1) == [13, 12, 11]


def test_remove_leaves_hole(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=3, size_z=3)
    editor.remove_t(seq, 1)
    editor.remove_z(seq, 1)
    assert seq.get_volume(1) == {}
    assert _slices(seq, value_at, t=2) == [21, None, 23]

    editor.remove_z_and_shift(seq, 0)
    assert _slices(seq, value_at, t=2) == [None, 23]


def test_reverse_twice_is_identity(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=3, size_z=2)
    seq.remove_image(0, 1)
    original = {key: seq.get_image(*key) for key in seq.keys()}

    editor.reverse_t(seq)
    assert _frames(seq, value_at) == [21, 11, 1]
    assert seq.get_image(2, 1) is None

    editor.reverse_t(seq)
    editor.reverse_z(seq)
    editor.reverse_z(seq)
    assert seq.keys() == list(original)
    for key, plane in original.items():
        assert seq.get_image(*key).equals(plane)


def test_reverse_emits_one_event(make_sequence, recorder) -> None:
    seq = make_sequence(size_t=4)
    seq.add_listener(recorder)
    editor.reverse_t(seq)
    assert len(recorder) == 1


def test_convert_to_time_and_stack(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=2, size_z=2)
    editor.convert_to_time(seq)
    assert (seq.size_t, seq.size_z) == (4, 1)
    assert _frames(seq, value_at) == [1, 2, 11, 12]

    editor.convert_to_stack(seq)
    assert (seq.size_t, seq.size_z) == (1, 4)
    assert _slices(seq, value_at) == [1, 2, 11, 12]


def test_adjust_zt(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=1, size_z=6)
    editor.adjust_zt(seq, 2, 3)
    assert (seq.size_t, seq.size_z) == (3, 2)
    assert [_slices(seq, value_at, t) for t in range(3)] == [[1, 2], [3, 4], [5, 6]]

    seq = make_sequence(size_t=1, size_z=6)
    editor.adjust_zt(seq, 2, 3, reverse_order=True)
    assert [_slices(seq, value_at, t) for t in range(3)] == [[1, 4], [2, 5], [3, 6]]

    seq = make_sequence(size_t=1, size_z=3)
    editor.adjust_zt(seq, 2, 2)
    assert [_slices(seq, value_at, t) for t in range(2)] == [[1, 2], [3, 0]]


def test_remove_channel(make_sequence) -> None:
    seq = make_sequence(size_t=2, size_c=3)
    seq.set_channel_name(2, "DAPI")
    editor.remove_channel(seq, 1)

    assert seq.size_c == 2
    assert seq.get_image(1, 0).size_c == 2
    assert seq.channel_name(1) == "DAPI"

    editor.remove_channel(seq, 5)
    assert seq.size_c == 2


def test_out_of_range_is_noop(make_sequence, value_at) -> None:
    seq = make_sequence(size_t=2)
    editor.swap_t(seq, 0, 9)
    editor.remove_t(seq, 9)
    editor.remove_t_and_shift(seq, -1)
    editor.add_t(seq, 5, 1)
    assert _frames(seq, value_at) == [1, 11]


def test_missing_sequence_raises() -> None:
    with pytest.raises(SequenceRequiredError):
        editor.reverse_t(None)
    # Also a ValueError
    with pytest.raises(ValueError):
        editor.add_t(None, 0, 1)


def test_empty_sequence_is_left_alone() -> None:
    seq = Sequence()
    editor.add_t(seq, 0, 2)
    editor.reverse_z(seq)
    editor.convert_to_time(seq)
    assert seq.is_empty()
    assert seq.to_array().shape == (0, 0, 0, 0, 0)
    seq.set_image(0, 0, np.zeros((2, 2), dtype=np.uint8))
    assert seq.size_t == 1
