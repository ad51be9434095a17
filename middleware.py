"""Request middleware: per-client rate limiting and bearer-token authentication."""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

import accounts
from config import settings

logger = logging.getLogger(__name__)

CLIENT_IDLE_SECONDS = 180.0
SWEEP_INTERVAL_SECONDS = 60.0


@dataclass
class _Bucket:
    tokens: float
    last_seen: float


class RateLimiter:
    """
    Token bucket per client key:
      - refills at ``rate`` tokens per second
      - holds at most ``burst`` tokens
    Clients idle for three minutes are forgotten.
    """

    def __init__(self, rate: float, burst: int, clock: Callable[[], float] = time.monotonic):
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._clients: Dict[str, _Bucket] = {}
        self._last_sweep = clock()

    def allow(self, key: str) -> bool:
        now = self._clock()
        if now - self._last_sweep > SWEEP_INTERVAL_SECONDS:
            self._sweep(now)

        bucket = self._clients.get(key)
        if bucket is None:
            bucket = self._clients[key] = _Bucket(tokens=float(self.burst), last_seen=now)
        else:
            elapsed = now - bucket.last_seen
            bucket.tokens = min(float(self.burst), bucket.tokens + elapsed * self.rate)
            bucket.last_seen = now

        if bucket.tokens < 1:
            logger.debug("Rate limit hit for %s", key)
            return False
        bucket.tokens -= 1
        return True

    def _sweep(self, now: float) -> None:
        for key in [k for k, b in self._clients.items() if now - b.last_seen > CLIENT_IDLE_SECONDS]:
            del self._clients[key]
        self._last_sweep = now

    def __len__(self) -> int:
        return len(self._clients)


def client_ip(request: Request) -> str:
    """Client address, preferring X-Forwarded-For then X-Real-IP when behind a proxy."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def error_response(status_code: int, message, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def install(app: FastAPI) -> None:
    """Register authenticate and rate-limit middleware (outermost last)."""
    limiter = RateLimiter(settings.LIMITER_RPS, settings.LIMITER_BURST)
    app.state.limiter = limiter

    @app.middleware("http")
    async def authenticate(request: Request, call_next):
        request.state.user = None
        header = request.headers.get("Authorization")
        if header:
            scheme, _, token = header.partition(" ")
            if scheme != "Bearer" or not token:
                return _invalid_token()
            async with request.app.state.database.session() as db:
                user = await accounts.user_for_authentication_token(db, token)
            if user is None:
                return _invalid_token()
            request.state.user = user
        return await call_next(request)

    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if settings.LIMITER_ENABLED:
            if not limiter.allow(client_ip(request)):
                return error_response(429, "rate limit exceeded")
        return await call_next(request)


def _invalid_token() -> JSONResponse:
    return error_response(
        401,
        "invalid or missing authentication token",
        headers={"WWW-Authenticate": "Bearer"},
    )
