import math
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError

ROOT_DIR = Path(__file__).resolve().parent.parent


@dataclass
class Settings:
    """Runtime settings, read from the environment (and an optional .env)."""

    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "bgmi"
    host: str = "0.0.0.0"
    port: int = 5000
    admin_id: Optional[str] = None
    store_retry_delay: float = 5.0
    sse_keepalive: float = 15.0
    sse_queue_size: int = 100
    log_dir: str = "."


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{name} must be a positive finite number, got {raw!r}")
    return value


def load_settings(env: Mapping[str, str] = None) -> Settings:
    """Build :class:`Settings` from ``env`` (defaults to ``os.environ``).

    When reading the process environment, a ``.env`` file at the project
    root is loaded first; variables already set take precedence.
    """
    if env is None:
        load_dotenv(ROOT_DIR / ".env")
        env = os.environ

    admin_id = env.get("ADMIN_ID")
    if admin_id is not None and not admin_id.strip():
        admin_id = None

    return Settings(
        mongo_url=env.get("MONGODB_URL") or Settings.mongo_url,
        db_name=env.get("DB_NAME") or Settings.db_name,
        host=env.get("HOST") or Settings.host,
        port=_number(env, "PORT", Settings.port, int),
        admin_id=admin_id,
        store_retry_delay=_number(env, "STORE_RETRY_DELAY", Settings.store_retry_delay, float),
        sse_keepalive=_number(env, "SSE_KEEPALIVE", Settings.sse_keepalive, float),
        sse_queue_size=_number(env, "SSE_QUEUE_SIZE", Settings.sse_queue_size, int),
        log_dir=env.get("LOG_DIR") or Settings.log_dir,
    )
