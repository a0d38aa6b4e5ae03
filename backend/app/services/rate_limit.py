from __future__ import annotations

from collections import defaultdict, deque
from threading import Lock
import time
from typing import Deque

from fastapi import HTTPException, Request, status


class InMemoryRateLimiter:
    def __init__(self, *, sweep_every: int = 512) -> None:
        self._buckets: dict[str, Deque[float]] = defaultdict(deque)
        self._lock = Lock()
        self._sweep_every = max(1, sweep_every)
        self._checks = 0

    def check(self, *, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        now = time.time()
        earliest = now - window_seconds
        retry_after = 1
        with self._lock:
            self._checks += 1
            if self._checks % self._sweep_every == 0:
                self._sweep(earliest)
            bucket = self._buckets[key]
            while bucket and bucket[0] < earliest:
                bucket.popleft()
            if len(bucket) >= max(1, limit):
                retry_after = max(1, int(bucket[0] + window_seconds - now))
                return False, retry_after
            bucket.append(now)
        return True, retry_after

    def _sweep(self, earliest: float) -> None:
        # per-IP keys never repeat for most clients; drop buckets with no live hits
        stale = [key for key, bucket in self._buckets.items() if not bucket or bucket[-1] < earliest]
        for key in stale:
            del self._buckets[key]

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()
            self._checks = 0


_limiter = InMemoryRateLimiter()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def enforce_rate_limit(*, scope: str, identity: str, limit: int, window_seconds: int) -> None:
    allowed, retry_after = _limiter.check(
        key=f"{scope}|{identity}",
        limit=limit,
        window_seconds=window_seconds,
    )
    if allowed:
        return
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=f"Too many requests. Try again in {retry_after} second(s).",
        headers={"Retry-After": str(retry_after)},
    )


def clear_rate_limiter() -> None:
    _limiter.clear()
