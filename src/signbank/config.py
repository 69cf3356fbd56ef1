from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BACKENDS = ("memory", "redis")


def _load_env_file(env_path: Optional[Path] = None) -> None:
    path = env_path or Path.cwd() / ".env"
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)


def _to_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def _to_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid number for {name}: {raw!r}, using {default}")
        return default


@dataclass(frozen=True)
class RedisConfig:
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None

    @classmethod
    def from_env(cls) -> "RedisConfig":
        uri = os.getenv("REDIS_URI")
        if uri:
            return cls.from_uri(uri)

        return cls(
            host=os.getenv("REDIS_HOST", cls.host),
            port=_to_int("REDIS_PORT", cls.port),
            db=_to_int("REDIS_DB", cls.db),
            password=os.getenv("REDIS_PASSWORD") or None,
        )

    @classmethod
    def from_uri(cls, uri: str) -> "RedisConfig":
        parsed = urlparse(uri)
        if parsed.scheme not in {"redis", "rediss"}:
            raise ValueError(
                f"Unsupported Redis URI scheme: {parsed.scheme!r}")

        db_fragment = parsed.path.lstrip("/")
        return cls(
            host=parsed.hostname or cls.host,
            port=parsed.port or cls.port,
            db=int(db_fragment) if db_fragment else cls.db,
            password=parsed.password or None,
        )


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read once at startup."""

    backend: str = "memory"
    redis: RedisConfig = field(default_factory=RedisConfig)
    media_dir: Optional[Path] = None
    history_size: int = 100
    consumer_queue_size: int = 256
    upload_timeout: float = 30.0
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: Tuple[str, ...] = ("*",)
    simulate_acceleration: bool = False

    def __post_init__(self):
        if self.backend not in BACKENDS:
            raise ValueError(
                f"Unsupported backend {self.backend!r}, expected one of {BACKENDS}")
        if self.history_size < 1:
            raise ValueError("history_size must be positive")
        if self.consumer_queue_size < 1:
            raise ValueError("consumer_queue_size must be positive")

    @classmethod
    def from_env(cls, *, env_path: Optional[Path] = None) -> "Settings":
        _load_env_file(env_path)

        media_dir = os.getenv("SIGNBANK_MEDIA_DIR")
        origins = os.getenv("SIGNBANK_CORS_ORIGINS", "*")

        return cls(
            backend=os.getenv("SIGNBANK_BACKEND", cls.backend).strip().lower(),
            redis=RedisConfig.from_env(),
            media_dir=Path(media_dir).expanduser() if media_dir else None,
            history_size=_to_int("SIGNBANK_HISTORY_SIZE", cls.history_size),
            consumer_queue_size=_to_int(
                "SIGNBANK_CONSUMER_QUEUE", cls.consumer_queue_size),
            upload_timeout=_to_float(
                "SIGNBANK_UPLOAD_TIMEOUT", cls.upload_timeout),
            host=os.getenv("HOST", cls.host),
            port=_to_int("PORT", cls.port),
            cors_origins=tuple(
                o.strip() for o in origins.split(",") if o.strip()) or ("*",),
            simulate_acceleration=_to_bool(
                os.getenv("SIGNBANK_SIMULATE_ACCELERATION")),
        )
