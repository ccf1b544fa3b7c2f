"""Application configuration — environment variables and derived constants.

Loads ``BOT_TOKEN`` and the polling settings from the environment via
``python-dotenv``.  All values are resolved at import time so other modules
can ``from config import …`` without repeated lookups.  Library code under
``bot/`` and ``sdk/`` never imports this module; only :mod:`main` does.
"""

# ── stdlib ───────────────────────────────────────────────────────────────────
import os

# ── third-party ──────────────────────────────────────────────────────────────
from dotenv import load_dotenv

# ── project ──────────────────────────────────────────────────────────────────
from core.logger import PollgramLogger
from sdk.client import DEFAULT_API_BASE
from bot.bot import BotOptions
from bot.update_loop import UpdateLoopOptions

# ── Environment bootstrap ────────────────────────────────────────────────────
load_dotenv()

logger = PollgramLogger.get_logger()

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


# ── Helper functions (private) ───────────────────────────────────────────────


def _parse_int(name: str, default: int) -> int:
    """Read an integer variable, falling back to *default* with a warning."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Invalid integer in environment, using default", extra={"variable": name, "value": raw, "default": default})
        return default


def _parse_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    logger.warning("Invalid boolean in environment, using default", extra={"variable": name, "value": raw, "default": default})
    return default


def _parse_discard(raw: str | None) -> bool | int:
    """Parse ``DISCARD``: a boolean word, or a positive count of updates to keep."""
    if raw is None:
        return False
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    try:
        count = int(value)
    except ValueError:
        count = 0
    if count < 1:
        logger.warning("Invalid DISCARD value, backlog will be delivered", extra={"value": raw})
        return False
    return count


def _parse_list(raw: str | None) -> tuple[str, ...]:
    """Split a comma-separated list, skipping blanks (e.g. ``"message, callback_query"``)."""
    if not raw:
        return ()
    return tuple(token.strip() for token in raw.split(",") if token.strip())


# ── Public constants ─────────────────────────────────────────────────────────

BOT_TOKEN: str | None = os.environ.get("BOT_TOKEN")
API_BASE: str = os.environ.get("API_BASE") or DEFAULT_API_BASE
POLL_TIME: int = _parse_int("POLL_TIME", 50)
BATCH_SIZE: int = _parse_int("BATCH_SIZE", 100)
RETRY_TIME: int = _parse_int("RETRY_TIME", 10)
DISCARD: bool | int = _parse_discard(os.environ.get("DISCARD"))
ALWAYS_RETRY: bool = _parse_bool("ALWAYS_RETRY", False)
ALLOWED_UPDATES: tuple[str, ...] = _parse_list(os.environ.get("ALLOWED_UPDATES"))
STRICT: bool = _parse_bool("STRICT", False)


# ── Option builders ──────────────────────────────────────────────────────────


def update_loop_options() -> UpdateLoopOptions:
    """Build :class:`UpdateLoopOptions` from the environment.

    Raises:
        ValueError: If the combination of values is out of range.
    """
    return UpdateLoopOptions(
        poll_time=POLL_TIME,
        discard=DISCARD,
        batch_size=BATCH_SIZE,
        allowed_updates=ALLOWED_UPDATES,
        retry_time=RETRY_TIME,
        always_retry=ALWAYS_RETRY,
    )


def bot_options() -> BotOptions:
    return BotOptions(update_loop=update_loop_options(), strict=STRICT)


# ── Startup diagnostics ─────────────────────────────────────────────────────

if BOT_TOKEN:
    logger.info("Config loaded — BOT_TOKEN is set", extra={"api_base": API_BASE})
else:
    logger.warning("Config loaded — BOT_TOKEN is NOT set")

logger.info(
    "Polling settings resolved",
    extra={
        "poll_time": POLL_TIME,
        "batch_size": BATCH_SIZE,
        "retry_time": RETRY_TIME,
        "discard": DISCARD,
        "always_retry": ALWAYS_RETRY,
        "allowed_updates": list(ALLOWED_UPDATES),
        "strict": STRICT,
    },
)
