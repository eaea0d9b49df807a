# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Fixed-window per-client rate limiter kept in process memory.

Each client (normally the source IP) gets a window of ``window_seconds``
starting at its first request. Up to ``max_requests`` requests are admitted
inside the window; the window restarts on the first request after it expired.

Expired records are treated as absent by :meth:`RateLimiter.admit` itself.
The background sweep only reclaims memory.

The table is process-local: several worker processes each keep their own.

Example:
    Using the rate limiter::

        limiter = RateLimiter(window_seconds=3600, max_requests=5)
        limiter.start()  # background sweep

        if not await limiter.admit(client_ip):
            retry_after = limiter.retry_after(client_ip)
            ...

        await limiter.stop()
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .logger import get_logger

UNKNOWN_CLIENT = "unknown"


@dataclass
class RateRecord:
    count: int
    window_reset_at: float


class RateLimiter:
    """Per-client fixed-window rate limiter.

    Attributes:
        window_seconds: Length of a window in seconds.
        max_requests: Requests admitted per client inside one window.
        sweep_interval: Seconds between background sweeps.
        records: Client id to :class:`RateRecord` table.
        lock: Asyncio lock guarding the check-then-increment sequence.
    """

    def __init__(
        self,
        window_seconds: int = 3600,
        max_requests: int = 5,
        *,
        sweep_interval: float | None = None,
        clock: Callable[[], float] = time.time,
        on_change: Callable[[int], None] | None = None,
    ):
        """Initialize the limiter.

        Args:
            window_seconds: Window length in seconds, a positive integer.
            max_requests: Admissions per window, a positive integer.
            sweep_interval: Seconds between sweeps. Defaults to the window.
            clock: Returns the current time in seconds.
            on_change: Called with the table size after it changes.

        Raises:
            ValueError: If a limit is not a positive integer.
        """
        for name, value in (("window_seconds", window_seconds), ("max_requests", max_requests)):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.sweep_interval = sweep_interval if sweep_interval is not None else float(window_seconds)
        self.records: dict[str, RateRecord] = {}
        self.lock = asyncio.Lock()
        self._clock = clock
        self._on_change = on_change
        self._task: asyncio.Task[Any] | None = None
        self.logger = get_logger("RateLimiter")

    def _expired(self, record: RateRecord, now: float) -> bool:
        return now > record.window_reset_at

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(len(self.records))

    async def admit(self, client_id: str) -> bool:
        """Decide whether a request from ``client_id`` is admitted.

        Returns:
            True when admitted (the request is counted), False when the
            client already used up its window.
        """
        key = client_id or UNKNOWN_CLIENT
        async with self.lock:
            now = self._clock()
            record = self.records.get(key)
            if record is None or self._expired(record, now):
                self.records[key] = RateRecord(count=1, window_reset_at=now + self.window_seconds)
                self._notify()
                return True
            if record.count >= self.max_requests:
                return False
            record.count += 1
            return True

    def retry_after(self, client_id: str) -> int:
        """Whole seconds until the client's window resets, 0 if none is active."""
        record = self.records.get(client_id or UNKNOWN_CLIENT)
        if record is None:
            return 0
        remaining = record.window_reset_at - self._clock()
        if remaining <= 0:
            return 0
        return math.ceil(remaining)

    async def sweep(self) -> int:
        """Drop every record whose window has expired.

        Returns:
            Number of records removed.
        """
        async with self.lock:
            now = self._clock()
            expired = [key for key, record in self.records.items() if self._expired(record, now)]
            for key in expired:
                del self.records[key]
            if expired:
                self._notify()
        if expired:
            self.logger.debug("Swept %d expired rate-limit records", len(expired))
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            await self.sweep()

    def start(self) -> None:
        """Start the background sweep on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._sweep_loop(), name="rate-limit-sweep")

    async def stop(self) -> None:
        """Cancel the background sweep and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


def client_id_from_headers(headers: Any, remote_addr: str | None) -> str:
    """Best available client address for rate limiting.

    Order: first ``X-Forwarded-For`` entry, ``X-Real-IP``, the connection
    address, then ``"unknown"``. Never returns an empty string.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    if remote_addr:
        return remote_addr
    return UNKNOWN_CLIENT
