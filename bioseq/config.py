"""Runtime configuration for bioseq."""

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
FILTERS = Literal["nearest", "bilinear", "bicubic"]


class Config(BaseSettings):
    """
    Settings read, from high to low priority, from constructor arguments,
    ``BIOSEQ_*`` environment variables, a ``.env`` file in the working directory
    and the defaults below.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="bioseq_",
        extra="ignore",
        validate_default=True,
    )

    log_level: LOG_LEVELS = "INFO"
    """Severity of log messages written by the command line interface"""
    thumbnail_size: int = 128
    """Maximum edge length (pixels) of generated thumbnails"""
    resample_filter: FILTERS = "bilinear"
    """Filter used when merged planes need to be resized"""
    fill_empty: bool = True
    """Replace missing planes by the previous non empty one when merging"""

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_level(cls, value: str) -> str:
        """Ensure log level strings are uppercased"""
        if isinstance(value, str):
            value = value.upper()
        return value

    @field_validator("resample_filter", mode="before")
    @classmethod
    def lowercase_filter(cls, value: str) -> str:
        if isinstance(value, str):
            value = value.lower()
        return value

    @field_validator("thumbnail_size")
    @classmethod
    def positive_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("thumbnail_size must be > 0")
        return value


config = Config()
