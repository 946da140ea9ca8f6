from types import SimpleNamespace
from typing import Dict, List, Optional

import numpy as np
import pytest

from bioseq.sequence import Sequence


def plane_value(t: int, z: int) -> int:
    """Fill value of the plane at (t, z) in sequences built by ``make_sequence``."""
    return t * 10 + z + 1


@pytest.fixture
def make_sequence():
    """Factory of sequences whose planes are filled with ``t * 10 + z + 1``."""

    def factory(
        size_t: int = 3,
        size_z: int = 1,
        size_c: int = 1,
        size_x: int = 4,
        size_y: int = 3,
        dtype=np.uint8,
        name: str = "seq",
    ) -> Sequence:
        seq = Sequence(name)
        with seq.updating():
            for t in range(size_t):
                for z in range(size_z):
                    data = np.full((size_c, size_y, size_x), plane_value(t, z), dtype=dtype)
                    seq.set_image(t, z, data)
        return seq

    return factory


@pytest.fixture
def value_at():
    """Returns the fill value of a plane, None if absent."""

    def get(seq: Sequence, t: int, z: int, c: int = 0) -> Optional[int]:
        plane = seq.get_image(t, z)
        if plane is None:
            return None
        return int(plane.data[c].flat[0])

    return get


class Recorder(list):
    """Listener storing every received event."""

    def __call__(self, event) -> None:
        self.append(event)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


class LazyArray:
    """Stands for the dask array returned by ``BioImage.get_image_dask_data``."""

    def __init__(self, data: np.ndarray):
        self._data = data

    def __getitem__(self, key) -> "LazyArray":
        return LazyArray(self._data[key])

    def compute(self) -> np.ndarray:
        return self._data


class FakeBioImage:
    """In-memory replacement of ``bioio.BioImage`` over one TCZYX array per scene."""

    def __init__(self, scenes: List[np.ndarray], pixel_size: float = 0.5, levels: int = 1):
        self._data = scenes
        self._scene = 0
        self._pixel_size = pixel_size
        self.resolution_levels = tuple(range(levels))
        self.level_calls: List[int] = []

    @property
    def scenes(self):
        return tuple(f"Image:{i}" for i in range(len(self._data)))

    def set_scene(self, index: int) -> None:
        self._scene = index

    def set_resolution_level(self, level: int) -> None:
        self.level_calls.append(level)

    @property
    def dims(self):
        return SimpleNamespace(order="TCZYX", shape=self._data[self._scene].shape)

    @property
    def dtype(self):
        return self._data[self._scene].dtype

    @property
    def physical_pixel_sizes(self):
        return SimpleNamespace(Z=None, Y=self._pixel_size, X=self._pixel_size)

    def get_image_dask_data(self, order: str, **kwargs) -> LazyArray:
        assert order == "CYX"
        data = self._data[self._scene]
        return LazyArray(data[kwargs.get("T", 0), :, kwargs.get("Z", 0)])


def _tczyx(size_t=2, size_c=2, size_z=3, size_y=8, size_x=10, dtype=np.uint16) -> np.ndarray:
    data = np.zeros((size_t, size_c, size_z, size_y, size_x), dtype=dtype)
    for t in range(size_t):
        for c in range(size_c):
            for z in range(size_z):
                data[t, c, z] = t * 100 + c * 10 + z
    return data


@pytest.fixture
def tczyx():
    """Factory of TCZYX arrays whose planes hold ``t * 100 + c * 10 + z``."""
    return _tczyx


@pytest.fixture
def fake_reader():
    """Build a reader callable serving ``FakeBioImage`` objects by identifier name.

    Unknown identifiers raise ``FileNotFoundError`` like a real reader would.
    """

    def build(images: Dict[str, List[np.ndarray]], levels: int = 1):
        opened = []

        def reader(identifier):
            key = str(getattr(identifier, "name", identifier))
            if key not in images:
                raise FileNotFoundError(key)
            image = FakeBioImage(images[key], levels=levels)
            opened.append(image)
            return image

        reader.opened = opened
        return reader

    return build
