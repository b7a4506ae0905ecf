"""
Page fetching for DOM dumps: rate limiting, retry with backoff, circuit breaker.

Every page is loaded in a fresh, cookie-less session so one capture never
leaks state into the next.
"""

import asyncio
import random
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from aiohttp import ClientSession, ClientTimeout, DummyCookieJar

from .errors import CircuitOpen, FetchError, RetryExhausted

T = TypeVar("T")

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


# ─────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────

@dataclass
class Backoff:
    attempts: int = 4         # max attempts per page
    base: float = 0.5         # initial delay
    cap: float = 8.0          # max delay cap
    jitter: float = 0.4       # random(0, jitter) added to delay
    multiplier: float = 2.0   # exponential growth factor


@dataclass
class FetchSettings:
    page_load_timeout: float = 120.0  # hard limit for one page
    connect_timeout: float = 10.0
    user_agent: str = "tamperwatch/0.1 (+https://example.com)"


# ─────────────────────────────────────────────────────────────
# Rate Limiter (token bucket)
# ─────────────────────────────────────────────────────────────

class RateLimiter:
    """Token bucket shared by every capture of a run."""

    def __init__(self, rate_per_sec: float, capacity: int):
        self.rate = rate_per_sec
        self.capacity = capacity
        self.tokens = float(capacity)
        self.updated = time.monotonic()

    def _refill(self):
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
        self.updated = now

    async def acquire(self):
        while True:
            self._refill()
            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return
            await asyncio.sleep((1.0 - self.tokens) / self.rate if self.rate > 0 else 0.05)


# ─────────────────────────────────────────────────────────────
# Circuit Breaker
# ─────────────────────────────────────────────────────────────

class CircuitBreaker:
    """Opens after ``fail_threshold`` consecutive failures, closes after ``cooldown``."""

    def __init__(self, fail_threshold: int = 8, cooldown: float = 15.0):
        self.fail_threshold = fail_threshold
        self.cooldown = cooldown
        self.failures = 0
        self.open_until = 0.0

    @property
    def is_open(self) -> bool:
        return time.monotonic() < self.open_until

    def on_success(self):
        self.failures = 0
        self.open_until = 0.0

    def on_failure(self):
        self.failures += 1
        if self.failures >= self.fail_threshold:
            self.open_until = time.monotonic() + self.cooldown

    def check(self):
        if self.is_open:
            raise CircuitOpen("Circuit open: temporarily backing off.")


# ─────────────────────────────────────────────────────────────
# Session and retries
# ─────────────────────────────────────────────────────────────

@asynccontextmanager
async def page_session(settings: FetchSettings) -> AsyncIterator[ClientSession]:
    timeout = ClientTimeout(total=settings.page_load_timeout, connect=settings.connect_timeout)
    headers = {"User-Agent": settings.user_agent}
    async with ClientSession(headers=headers, timeout=timeout, cookie_jar=DummyCookieJar()) as s:
        yield s


async def with_retries(
    fn: Callable[[], Awaitable[T]],
    backoff: Backoff,
    breaker: CircuitBreaker,
) -> T:
    """
    Run fn() until it succeeds, sleeping with exponential backoff and jitter
    between attempts. Retryable HTTP statuses add a penalty to the delay.
    """
    delay = backoff.base
    last_exc: Optional[BaseException] = None

    for _ in range(backoff.attempts):
        try:
            breaker.check()
            result = await fn()
            breaker.on_success()
            return result

        except CircuitOpen as e:
            last_exc = e
            await asyncio.sleep(1.0)

        except Exception as e:
            last_exc = e
            breaker.on_failure()

            penalty = 0.0
            if getattr(e, "status", None) in RETRYABLE_STATUSES:
                penalty = 0.5 * delay

            await asyncio.sleep(min(delay, backoff.cap) + random.random() * backoff.jitter + penalty)
            delay *= backoff.multiplier

    raise RetryExhausted(str(last_exc) if last_exc else "Retry attempts exhausted.")


async def fetch_page(
    url: str,
    rl: RateLimiter,
    settings: Optional[FetchSettings] = None,
    backoff: Optional[Backoff] = None,
    breaker: Optional[CircuitBreaker] = None,
) -> str:
    """Return the HTML source of ``url``."""
    settings = settings or FetchSettings()
    backoff = backoff or Backoff()
    breaker = breaker or CircuitBreaker()

    await rl.acquire()

    async def _get() -> str:
        async with page_session(settings) as s:
            async with s.get(url, allow_redirects=True) as r:
                if r.status >= 400:
                    raise FetchError(url, r.status)
                return await r.text()

    return await with_retries(_get, backoff, breaker)
