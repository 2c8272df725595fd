"""
Runtime configuration for English Partner.

Settings are read from a .env file at the project root:

    OPENAI_API_KEY=sk-...
    FIREBASE_CREDENTIALS_PATH=./service-account.json   # optional
    PARTNER_DEBUG=0                                     # silence debug output

We use python-dotenv + os.getenv so secrets stay out of git. Without
FIREBASE_CREDENTIALS_PATH the record store runs in local (in-process) mode.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .logger import debug_enabled, logger

DEFAULT_CHAT_MODEL = "gpt-4o-2024-08-06"
DEFAULT_MAX_WEAKNESSES = 50


@dataclass
class Settings:
    """Process-wide settings, loaded once at startup."""
    openai_api_key: Optional[str] = None
    chat_model: str = DEFAULT_CHAT_MODEL
    reply_temperature: float = 0.7
    critique_temperature: float = 0.7
    firebase_credentials_path: Optional[str] = None
    max_weaknesses: int = DEFAULT_MAX_WEAKNESSES
    debug: bool = True

    @property
    def masked_api_key(self) -> str:
        key = self.openai_api_key or ""
        # Show first 8 and last 4 chars
        return f"{key[:8]}...{key[-4:]}" if len(key) > 12 else "***"


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not a number, using {default}")
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"{name}={raw!r} is not an integer, using {default}")
        return default


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    """Load settings from the environment (and .env, if present)."""
    logger.env("Loading environment variables from .env file...")
    if load_dotenv(dotenv_path):
        logger.env_success("dotenv file loaded successfully")
    else:
        logger.warning("No .env file found or file is empty")

    settings = Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        chat_model=os.getenv("OPENAI_MODEL") or DEFAULT_CHAT_MODEL,
        reply_temperature=_float_env("PARTNER_REPLY_TEMPERATURE", 0.7),
        critique_temperature=_float_env("PARTNER_CRITIQUE_TEMPERATURE", 0.7),
        firebase_credentials_path=os.getenv("FIREBASE_CREDENTIALS_PATH"),
        max_weaknesses=max(1, _int_env("PARTNER_MAX_WEAKNESSES", DEFAULT_MAX_WEAKNESSES)),
        debug=debug_enabled(os.getenv("PARTNER_DEBUG")),
    )
    logger.enabled = settings.debug

    if settings.openai_api_key:
        logger.env_success(f"OPENAI_API_KEY found: {settings.masked_api_key}")
    else:
        logger.env_error("OPENAI_API_KEY not found in environment!")
    logger.env(f"Chat model: {settings.chat_model}")
    return settings
