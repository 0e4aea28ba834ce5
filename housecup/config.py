import logging
import os
from dataclasses import dataclass

from .errors import NotConfiguredError

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


@dataclass(frozen=True)
class Settings:
    storage_backend: str = "memory"
    poll_interval_seconds: float = 10.0
    max_conflict_retries: int = 3
    image_base_url: str = "memory://costume-images"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            storage_backend=os.getenv("HOUSECUP_STORAGE", cls.storage_backend),
            poll_interval_seconds=_parse_number(
                "HOUSECUP_POLL_INTERVAL", cls.poll_interval_seconds, float
            ),
            max_conflict_retries=_parse_number(
                "HOUSECUP_MAX_CONFLICT_RETRIES", cls.max_conflict_retries, int
            ),
            image_base_url=os.getenv("HOUSECUP_IMAGE_BASE_URL", cls.image_base_url),
            log_level=os.getenv("HOUSECUP_LOG_LEVEL", cls.log_level).upper(),
        )


def _parse_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise NotConfiguredError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise NotConfiguredError(f"{name} must not be negative, got {raw!r}")
    return value


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
