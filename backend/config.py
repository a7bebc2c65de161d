"""
Settings and API key management for FragCoder.

Reads keys and tunables from backend/.env using python-dotenv.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv, set_key

logger = logging.getLogger(__name__)

ENV_PATH = Path(__file__).resolve().parent / ".env"

DEFAULT_MODEL = "google/gemini-2.0-flash-001"
DEFAULT_FRONTEND_URL = "http://localhost:5173"
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_TASK_RESET_DELAY = 0.5


@dataclass(frozen=True)
class Settings:
    openrouter_api_key: str | None = None
    openrouter_model: str = DEFAULT_MODEL
    anthropic_api_key: str | None = None
    frontend_url: str = DEFAULT_FRONTEND_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT  # seconds
    task_reset_delay: float = DEFAULT_TASK_RESET_DELAY  # seconds
    log_level: str = "INFO"


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default
    if value < 0:
        logger.warning("Ignoring negative %s=%r, using %s", name, raw, default)
        return default
    return value


def load_settings() -> Settings:
    """Load backend/.env into os.environ and build a Settings snapshot."""
    load_dotenv(ENV_PATH, override=False)
    return Settings(
        openrouter_api_key=os.environ.get("OPENROUTER_API_KEY") or None,
        openrouter_model=os.environ.get("OPENROUTER_MODEL") or DEFAULT_MODEL,
        anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY") or None,
        frontend_url=os.environ.get("FRONTEND_URL") or DEFAULT_FRONTEND_URL,
        request_timeout=_float_env("AI_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
        task_reset_delay=_float_env("TASK_RESET_DELAY", DEFAULT_TASK_RESET_DELAY),
        log_level=(os.environ.get("LOG_LEVEL") or "INFO").upper(),
    )


def save_api_key(name: str, key: str) -> None:
    """Persist an API key to backend/.env and set it in the current process."""
    ENV_PATH.touch(exist_ok=True)
    set_key(str(ENV_PATH), name, key)
    os.environ[name] = key
