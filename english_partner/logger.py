"""
Centralized logging configuration for English Partner.

Provides consistent, color-coded debug output for:
- Environment/configuration status
- Language model gateway calls and responses
- Record store reads and writes
- Conversation turn state transitions
- Quiz generation
- Errors and warnings

Usage:
    from english_partner.logger import logger

    logger.api_call("chat.completions.create", model="gpt-4o")
    logger.turn_transition("IDLE", "AWAITING_REPLY")
    logger.error("Failed to persist message", exc_info=True)

Output is on unless PARTNER_DEBUG=0; load_settings() re-applies the flag
once .env has been read.
"""

import os
import sys
import time
import traceback
from datetime import datetime
from typing import Optional


class ColorCodes:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_BLUE = "\033[94m"
    BRIGHT_CYAN = "\033[96m"


def debug_enabled(value: Optional[str]) -> bool:
    """Anything but an explicit "0" keeps logging on."""
    return (value or "1").strip() != "0"


class DebugLogger:
    """
    Debug logger with categorized, color-coded output.

    Categories:
    - ENV: Environment/configuration (dotenv, API keys)
    - API: Language model gateway calls
    - DB: Record store operations
    - TURN: Conversation turn lifecycle
    - QUIZ: Quiz lookup and generation
    - OK / WARN / ERR / DBG: general status
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._start_time = datetime.now()

    def _emit(self, line: str, to_stderr: bool = False) -> None:
        print(line, file=sys.stderr if to_stderr else sys.stdout, flush=True)

    def _log(self, category: str, color: str, message: str, exc_info: bool = False) -> None:
        if not self.enabled:
            return

        now = datetime.now()
        elapsed = (now - self._start_time).total_seconds()
        stamp = f"{now:%H:%M:%S}.{now.microsecond // 1000:03d} (+{elapsed:>6.1f}s)"
        indent = " " * (len(stamp) + 8)

        first, *rest = message.split("\n")
        self._emit(f"{ColorCodes.DIM}{stamp}{ColorCodes.RESET} "
                   f"{color}{ColorCodes.BOLD}[{category:>4}]{ColorCodes.RESET} {first}")
        for line in rest:
            self._emit(f"{indent}{line}")

        if exc_info:
            for line in traceback.format_exc().splitlines():
                if line.strip():
                    self._emit(f"{indent}{ColorCodes.RED}{line}{ColorCodes.RESET}", to_stderr=True)

    # === Environment/Configuration ===
    def env(self, message: str, **kwargs) -> None:
        """Log environment/configuration messages (dotenv, API keys, etc.)."""
        self._log("ENV", ColorCodes.MAGENTA, message, **kwargs)

    def env_success(self, message: str, **kwargs) -> None:
        self._log("ENV", ColorCodes.GREEN, f"✓ {message}", **kwargs)

    def env_error(self, message: str, **kwargs) -> None:
        self._log("ENV", ColorCodes.RED, f"✗ {message}", **kwargs)

    # === Gateway ===
    def api(self, message: str, **kwargs) -> None:
        self._log("API", ColorCodes.CYAN, message, **kwargs)

    def api_call(self, endpoint: str, model: Optional[str] = None, **kwargs) -> None:
        """Log an outgoing completion request."""
        suffix = f" (model: {model})" if model else ""
        self._log("API", ColorCodes.CYAN, f"→ Calling {endpoint}{suffix}", **kwargs)

    def api_response(self, endpoint: str, duration_ms: Optional[float] = None, **kwargs) -> None:
        suffix = f" ({duration_ms:.0f}ms)" if duration_ms else ""
        self._log("API", ColorCodes.BRIGHT_CYAN, f"← Response from {endpoint}{suffix}", **kwargs)

    def api_error(self, message: str, **kwargs) -> None:
        self._log("API", ColorCodes.BRIGHT_RED, f"✗ {message}", **kwargs)

    # === Record store ===
    def db(self, message: str, **kwargs) -> None:
        self._log("DB", ColorCodes.BLUE, message, **kwargs)

    def db_write(self, collection: str, record_id: str, **kwargs) -> None:
        """Log a document written to a collection."""
        self._log("DB", ColorCodes.BRIGHT_BLUE, f"↓ {collection}/{record_id}", **kwargs)

    # === Conversation turns ===
    def turn(self, message: str, **kwargs) -> None:
        self._log("TURN", ColorCodes.WHITE, message, **kwargs)

    def turn_transition(self, from_state: str, to_state: str, **kwargs) -> None:
        self._log("TURN", ColorCodes.BRIGHT_BLUE, f"{from_state} → {to_state}", **kwargs)

    # === Quizzes ===
    def quiz(self, message: str, **kwargs) -> None:
        self._log("QUIZ", ColorCodes.YELLOW, message, **kwargs)

    # === General Status ===
    def success(self, message: str, **kwargs) -> None:
        self._log("OK", ColorCodes.BRIGHT_GREEN, f"✓ {message}", **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log("WARN", ColorCodes.BRIGHT_YELLOW, f"⚠ {message}", **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log("ERR", ColorCodes.BRIGHT_RED, f"✗ {message}", **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._log("DBG", ColorCodes.DIM, message, **kwargs)

    # === Section markers ===
    def separator(self, title: str) -> None:
        if self.enabled:
            rule = "─" * 20
            self._emit(f"\n{ColorCodes.DIM}{rule} {title} {rule}{ColorCodes.RESET}\n")

    def banner(self, text: str) -> None:
        if not self.enabled:
            return
        width = max(60, len(text) + 4)
        inner = text.center(width - 2)
        self._emit(f"\n{ColorCodes.BRIGHT_CYAN}{'═' * width}{ColorCodes.RESET}")
        self._emit(f"{ColorCodes.BRIGHT_CYAN}║{ColorCodes.BOLD}{inner}{ColorCodes.RESET}"
                   f"{ColorCodes.BRIGHT_CYAN}║{ColorCodes.RESET}")
        self._emit(f"{ColorCodes.BRIGHT_CYAN}{'═' * width}{ColorCodes.RESET}\n")


# Global logger instance
logger = DebugLogger(enabled=debug_enabled(os.getenv("PARTNER_DEBUG")))


class Timer:
    """Context manager that records elapsed milliseconds in `duration_ms`."""

    def __init__(self):
        self.duration_ms: float = 0
        self._started = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.duration_ms = (time.perf_counter() - self._started) * 1000
