import threading
from pathlib import Path

import numpy as np
import pytest

from bioseq import importer as importer_module
from bioseq.exceptions import OperationCancelled, OperationFailed
from bioseq.importer import (
    BioioImporter,
    load_sequence,
    load_thumbnails,
    read_series_metadata,
    render_preview,
)
from bioseq.plane import Plane
from bioseq.types import DataType


def test_open_failures(fake_reader, tczyx) -> None:
    reader = fake_reader({"a.tif": [tczyx()]})
    importer = BioioImporter(reader)

    assert not importer.open("missing.tif")
    assert not importer.open("a.tif", series=1)
    with pytest.raises(RuntimeError):
        importer.image

    assert importer.open(Path("/data/a.tif"))
    assert importer.series_count == 1
    importer.close()
    with pytest.raises(RuntimeError):
        importer.metadata()


def test_read_series_metadata(fake_reader, tczyx) -> None:
    reader = fake_reader({"a.tif": [tczyx()]})
    meta = read_series_metadata(reader("a.tif"))
    assert (meta.size_x, meta.size_y, meta.size_z, meta.size_t, meta.size_c) == (10, 8, 3, 2, 2)
    assert meta.data_type is DataType.UINT16
    assert meta.pixel_size_x == 0.5
    assert meta.pixel_size_z is None


def test_load_sequence(fake_reader, tczyx) -> None:
    reader = fake_reader({"a.tif": [tczyx(), tczyx(size_t=1, size_z=1, dtype=np.uint8)]})

    seq = load_sequence("a.tif", reader=reader)
    assert seq.name == "a.tif"
    assert (seq.size_t, seq.size_z, seq.size_c) == (2, 3, 2)
    assert seq.get_image(1, 2).data[1, 0, 0] == 112
    assert seq.pixel_size_x == 0.5
    assert seq.pixel_size_z == 1.0

    second = load_sequence("a.tif", series=1, reader=reader)
    assert second.name == "a.tif - series 1"
    assert second.data_type is DataType.UINT8

    assert load_sequence("a.tif", series=2, reader=reader) is None
    assert load_sequence("b.tif", reader=reader) is None


def test_load_sequence_progress_and_cancel(fake_reader, tczyx) -> None:
    reader = fake_reader({"a.tif": [tczyx()]})
    calls = []
    load_sequence("a.tif", reader=reader, progress=lambda i, n: calls.append((i, n)))
    assert calls == [(i, 6) for i in range(6)]

    cancel = threading.Event()

    def stop_at_two(index, total):
        if index == 2:
            cancel.set()

    with pytest.raises(OperationCancelled) as info:
        load_sequence("a.tif", reader=reader, progress=stop_at_two, cancel=cancel)
    assert info.value.last_index == 2


def test_load_sequence_failure_reports_last_plane(fake_reader, tczyx, monkeypatch) -> None:
    reader = fake_reader({"a.tif": [tczyx()]})
    read_plane = BioioImporter.get_plane

    def truncated_file(self, t, z):
        if (t, z) == (1, 1):
            raise OSError("unexpected end of file")
        return read_plane(self, t, z)

    monkeypatch.setattr(BioioImporter, "get_plane", truncated_file)
    with pytest.raises(OperationFailed) as info:
        load_sequence("a.tif", reader=reader)
    # planes are read in T then Z order, (1, 1) is the fifth one
    assert info.value.last_index == 3
    assert isinstance(info.value.__cause__, OSError)


def test_thumbnail_uses_lowest_resolution(fake_reader, tczyx) -> None:
    reader = fake_reader({"a.tif": [tczyx(size_c=4, size_y=40, size_x=20)]}, levels=3)
    importer = BioioImporter(reader, thumbnail_size=10)
    assert importer.open("a.tif")

    thumbnail = importer.get_thumbnail(0)
    assert reader.opened[0].level_calls == [2, 0]
    assert (thumbnail.size_x, thumbnail.size_y, thumbnail.size_c) == (5, 10, 3)
    # middle slice of the first frame
    assert (thumbnail.data[2] == 21).all()


def test_small_thumbnail_is_not_upscaled(fake_reader, tczyx) -> None:
    reader = fake_reader({"a.tif": [tczyx(size_c=1)]})
    importer = BioioImporter(reader, thumbnail_size=64)
    importer.open("a.tif")
    thumbnail = importer.get_thumbnail(0)
    assert (thumbnail.size_x, thumbnail.size_y) == (10, 8)
    assert reader.opened[0].level_calls == []


class FlakyImporter:
    """Importer failing in a different way for each series."""

    def __init__(self):
        self.closed = 0

    def open(self, identifier, series=0):
        return series != 3

    def get_thumbnail(self, series):
        if series == 1:
            raise MemoryError()
        if series == 2:
            raise OSError("corrupt tile")
        return Plane.zeros(2, 2, 1, DataType.UINT16)

    def close(self):
        self.closed += 1


def test_load_thumbnails_never_raises() -> None:
    importer = FlakyImporter()
    placeholder = Plane.zeros(1, 1, 1, DataType.UINT8)

    thumbnails = load_thumbnails(importer, "x", 4, placeholder)
    assert thumbnails[0].data_type is DataType.UINT16
    assert all(thumbnail is placeholder for thumbnail in thumbnails[1:])
    assert importer.closed == 4


def test_default_placeholder(monkeypatch) -> None:
    monkeypatch.setattr(importer_module.config, "thumbnail_size", 16)
    importer = FlakyImporter()
    thumbnails = load_thumbnails(importer, "x", 2)
    assert thumbnails[1].structure == (16, 16, 1, DataType.UINT8)


def test_render_preview() -> None:
    data = np.arange(3 * 8 * 10, dtype=np.uint16).reshape(3, 8, 10)
    rgb = render_preview(Plane(data), max_size=4)
    assert rgb.mode == "RGB"
    assert max(rgb.size) == 4

    gray = render_preview(Plane(np.full((8, 10), 5, dtype=np.float32)))
    assert gray.mode == "L"
    assert gray.size == (10, 8)
    assert not np.asarray(gray).any()
