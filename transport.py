"""
Best-effort Telegram calls

Every outbound call from the moderation pipeline goes through `attempt`,
which turns Telegram errors into a CallResult instead of raising.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Optional

from telegram.error import (
    BadRequest, Forbidden, NetworkError, RetryAfter, TelegramError, TimedOut
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallResult:
    """Outcome of one outbound call"""
    ok: bool
    value: Any = None
    error_kind: Optional[str] = None
    error: str = ""


def classify_error(exc: TelegramError) -> str:
    # BadRequest and TimedOut subclass NetworkError, check them first
    if isinstance(exc, Forbidden):
        return "forbidden"
    if isinstance(exc, RetryAfter):
        return "rate_limited"
    if isinstance(exc, BadRequest):
        return "bad_request"
    if isinstance(exc, TimedOut):
        return "timed_out"
    if isinstance(exc, NetworkError):
        return "network"
    return "telegram"


async def attempt(call: Awaitable, what: str = "telegram call") -> CallResult:
    """Await `call`, never letting a Telegram error escape."""
    try:
        value = await call
    except TelegramError as e:
        kind = classify_error(e)
        log.debug("%s failed (%s): %s", what, kind, e.message)
        return CallResult(ok=False, error_kind=kind, error=e.message)
    return CallResult(ok=True, value=value)
