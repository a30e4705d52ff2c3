"""Configuration loaded from environment variables."""

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "rss_aggregator.db"
DEFAULT_FETCH_INTERVAL = 60  # seconds
DEFAULT_FETCH_TIMEOUT = 15.0
DEFAULT_FETCH_WORKERS = 10
DEFAULT_FETCH_LOG_SIZE = 1000
DEFAULT_TEST_SOURCE_PATTERNS = ("/test_feeds/",)

_TRUTHY = {"true", "1", "yes", "on"}


@dataclass
class Settings:
    """Runtime settings for the aggregator."""

    db_path: str = DEFAULT_DB_PATH
    background_fetch_enabled: bool = True
    background_fetch_interval: int = DEFAULT_FETCH_INTERVAL
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    fetch_workers: int = DEFAULT_FETCH_WORKERS
    fetch_log_size: int = DEFAULT_FETCH_LOG_SIZE
    test_source_patterns: tuple[str, ...] = field(
        default_factory=lambda: DEFAULT_TEST_SOURCE_PATTERNS
    )
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "Settings":
        """Build settings from the environment (or an explicit mapping)."""
        env = os.environ if environ is None else environ
        return cls(
            db_path=env.get("RSS_DB_PATH", DEFAULT_DB_PATH),
            background_fetch_enabled=_parse_bool(
                env.get("BACKGROUND_FETCH_ENABLED", ""), default=True
            ),
            background_fetch_interval=_parse_positive_int(
                "BACKGROUND_FETCH_INTERVAL",
                env.get("BACKGROUND_FETCH_INTERVAL", ""),
                DEFAULT_FETCH_INTERVAL,
            ),
            fetch_timeout=_parse_positive_float(
                "FETCH_TIMEOUT", env.get("FETCH_TIMEOUT", ""), DEFAULT_FETCH_TIMEOUT
            ),
            fetch_workers=_parse_positive_int(
                "FETCH_WORKERS", env.get("FETCH_WORKERS", ""), DEFAULT_FETCH_WORKERS
            ),
            fetch_log_size=_parse_positive_int(
                "FETCH_LOG_SIZE", env.get("FETCH_LOG_SIZE", ""), DEFAULT_FETCH_LOG_SIZE
            ),
            test_source_patterns=_parse_patterns(env.get("TEST_SOURCE_PATTERNS", "")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )


def _parse_bool(value: str, default: bool) -> bool:
    value = value.strip().lower()
    if not value:
        return default
    return value in _TRUTHY


def _parse_positive_int(name: str, value: str, default: int) -> int:
    if not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        parsed = 0
    if parsed <= 0:
        logger.warning("Invalid %s value '%s', using default %d", name, value, default)
        return default
    return parsed


def _parse_positive_float(name: str, value: str, default: float) -> float:
    if not value.strip():
        return default
    try:
        parsed = float(value.strip())
    except ValueError:
        parsed = 0.0
    if parsed <= 0:
        logger.warning("Invalid %s value '%s', using default %s", name, value, default)
        return default
    return parsed


def _parse_patterns(value: str) -> tuple[str, ...]:
    patterns = tuple(p.strip() for p in value.split(",") if p.strip())
    return patterns or DEFAULT_TEST_SOURCE_PATTERNS
