"""Environment configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ENV_PREFIX = "TICKSTREAM_"


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(ENV_PREFIX + name, "").strip()
    return value or default


def _env_number(name: str, default: float, cast: type = float):
    raw = os.environ.get(ENV_PREFIX + name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s%s=%r, using %s", ENV_PREFIX, name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Process settings, read once at startup.

    Every field maps to a ``TICKSTREAM_<NAME>`` environment variable; unset,
    empty or unparseable values keep the default.
    """

    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    tick_min_interval: float = 1.0
    tick_max_interval: float = 3.0
    history_ttl: float = 15 * 60
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> Settings:
        origins = _env_str("CORS_ORIGINS", "*")
        return cls(
            host=_env_str("HOST", cls.host),
            port=_env_number("PORT", cls.port, int),
            log_level=_env_str("LOG_LEVEL", cls.log_level).upper(),
            tick_min_interval=_env_number("TICK_MIN_INTERVAL", cls.tick_min_interval),
            tick_max_interval=_env_number("TICK_MAX_INTERVAL", cls.tick_max_interval),
            history_ttl=_env_number("HISTORY_TTL", cls.history_ttl),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        )
