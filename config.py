"""Runtime configuration read from the environment.

Values are read on every call rather than cached at import time, so a
missing credential only fails the code path that needs it.

Usage:
    from config import improvement_batch_size, require
    threshold = improvement_batch_size()
    api_key = require("ELEVENLABS_API_KEY")
"""
import os

from dotenv import load_dotenv

from errors import MissingConfigError

load_dotenv()

VELMA_DEFAULT_URL = "https://modulate-prototype-apis.com/api/velma-2-stt-batch"

_TRUTHY = {"1", "true", "yes", "on"}


def require(name: str, hint: str = "") -> str:
    """Return a non-empty environment value or raise MissingConfigError."""
    value = os.environ.get(name, "").strip()
    if not value:
        raise MissingConfigError(name, hint)
    return value


def optional(name: str) -> str:
    return os.environ.get(name, "").strip()


def improvement_batch_size() -> int:
    """Calls needed since the last improvement cycle before a rewrite fires."""
    raw = os.environ.get("IMPROVEMENT_BATCH_SIZE", "1").strip() or "1"
    return max(1, int(raw))


def improvement_paused() -> bool:
    return os.environ.get("IMPROVEMENT_PAUSED", "").strip().lower() in _TRUTHY


def velma_url() -> str:
    return os.environ.get("VELMA_API_URL", "").strip() or VELMA_DEFAULT_URL


def log_level() -> str:
    return os.environ.get("LOG_LEVEL", "INFO").upper()
