import pytest
from pydantic import ValidationError

from bioseq.config import Config


def test_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    config = Config()
    assert config.log_level == "INFO"
    assert config.thumbnail_size == 128
    assert config.resample_filter == "bilinear"
    assert config.fill_empty


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("BIOSEQ_LOG_LEVEL", "debug")
    monkeypatch.setenv("BIOSEQ_THUMBNAIL_SIZE", "64")
    monkeypatch.setenv("BIOSEQ_RESAMPLE_FILTER", "NEAREST")
    monkeypatch.setenv("BIOSEQ_FILL_EMPTY", "false")

    config = Config()
    assert config.log_level == "DEBUG"
    assert config.thumbnail_size == 64
    assert config.resample_filter == "nearest"
    assert not config.fill_empty


def test_dotenv_file(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("BIOSEQ_THUMBNAIL_SIZE=32\n")
    assert Config().thumbnail_size == 32


@pytest.mark.parametrize(
    "field,value",
    [("thumbnail_size", 0), ("log_level", "verbose"), ("resample_filter", "lanczos")],
)
def test_invalid_values(monkeypatch, tmp_path, field, value):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValidationError):
        Config(**{field: value})
