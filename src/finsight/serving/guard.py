"""Chat input guard — sanitising, validation and per-client rate limiting.

Everything here runs before the agent sees a message, so rejected input
never costs an embedding or a model call.
"""

from __future__ import annotations

import math
import re
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from finsight.config import settings

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")

INJECTION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"ignore\s+(previous|above|all)\s+instructions",
        r"disregard\s+(previous|above|all)\s+(instructions|prompts)",
        r"forget\s+(previous|all)\s+instructions",
        r"new\s+instructions:",
        r"system\s*:\s*",
        r"act\s+as\s+(a\s+)?different",
        r"pretend\s+(to\s+be|you\s+are)",
        r"override\s+your\s+instructions",
    )
]

PROFANITY_WORDS = ("damn", "hell", "crap", "shit", "fuck", "bitch", "asshole")
_PROFANITY_RE = re.compile(r"\b(" + "|".join(PROFANITY_WORDS) + r")\b", re.IGNORECASE)


# ── Sanitising / validation ───────────────────────────────────────────


def sanitize_input(text: str) -> str:
    """Drop control characters (newlines included) and trim."""
    return _CONTROL_CHARS_RE.sub("", text).strip()


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def validate_user_input(text: str, *, max_length: int | None = None) -> ValidationResult:
    """Check *text* for emptiness, length, prompt injection and profanity.

    An empty message short-circuits; the other checks accumulate.
    """
    limit = max_length or settings.max_message_length
    if not text or not text.strip():
        return ValidationResult(False, ["Input cannot be empty"])

    errors: list[str] = []
    if len(text) > limit:
        errors.append(f"Input is too long (maximum {limit} characters)")
    if any(p.search(text) for p in INJECTION_PATTERNS):
        errors.append("Input contains potentially harmful instructions")
    if _PROFANITY_RE.search(text):
        errors.append("Input contains inappropriate language")
    return ValidationResult(not errors, errors)


# ── Rate limiting ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    """Sliding-window limiter: at most *limit* hits per *window* seconds per key.

    Parameters
    ----------
    limit:
        Requests allowed per window; defaults to ``settings.rate_limit_per_minute``.
    window:
        Window length in seconds.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        limit: int | None = None,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit or settings.rate_limit_per_minute
        self.window = window
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def check(self, key: str) -> RateLimitResult:
        """Record a hit for *key* if it fits in the window."""
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window:
                self._sweep(now)
            hits = self._hits.setdefault(key, deque())
            _expire(hits, now - self.window)

            if len(hits) >= self.limit:
                return RateLimitResult(False, 0, hits[0] + self.window)

            hits.append(now)
            return RateLimitResult(True, self.limit - len(hits), hits[0] + self.window)

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def _sweep(self, now: float) -> None:
        """Forget keys with no hit inside the window."""
        for key in list(self._hits):
            hits = self._hits[key]
            _expire(hits, now - self.window)
            if not hits:
                del self._hits[key]
        self._last_sweep = now

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)

    def retry_after(self, result: RateLimitResult) -> int:
        """Whole seconds until *result*'s window frees a slot (at least 1)."""
        return max(1, math.ceil(result.reset_at - self._clock()))
