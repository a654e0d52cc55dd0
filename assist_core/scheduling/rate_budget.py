"""固定窗口的双资源限流预算。

同时跟踪两条上限：窗口内的请求数与估算 token 数。窗口边界落在
start + k * window 的固定网格上，跨过边界时两个计数器一起恢复到最大值。
检查与重置在同一把锁内完成，避免两个任务同时看到过期余量而一起超额准入。
"""

from __future__ import annotations

import math
import threading
import time
from typing import Callable

from assist_core.domain.models import RateWindow
from assist_core.infrastructure.logging.logger import logger


class RateBudget:
    def __init__(
        self,
        max_requests: int,
        max_tokens: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1 or max_tokens < 1:
            raise ValueError("rate budget maxima must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = max_requests
        self.max_tokens = max_tokens
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._ends_at = clock() + window_seconds
        self._requests_remaining = max_requests
        self._tokens_remaining = max_tokens

    def reserve(self, cost: int) -> bool:
        """尝试为一个任务预留 (1 个请求, max(1, cost) 个 token)。

        任一上限不足时返回 False 且不修改计数器。超过单窗口上限的成本按上限计，
        即只能在一个全新的窗口里被准入。
        """

        units = max(1, int(cost))
        if units > self.max_tokens:
            logger.warning(
                "Task cost exceeds per-window token maximum, clamped",
                extra={"extra": {"cost": units, "max_tokens": self.max_tokens}},
            )
            units = self.max_tokens
        with self._lock:
            self._roll(self._clock())
            if self._requests_remaining - 1 < 0 or self._tokens_remaining - units < 0:
                return False
            self._requests_remaining -= 1
            self._tokens_remaining -= units
            return True

    def reset(self) -> None:
        """立即开启一个新窗口。"""

        with self._lock:
            self._restore(self._clock() + self.window_seconds)

    def seconds_until_reset(self) -> float:
        with self._lock:
            now = self._clock()
            self._roll(now)
            return max(0.0, self._ends_at - now)

    def snapshot(self) -> RateWindow:
        with self._lock:
            self._roll(self._clock())
            return RateWindow(
                ends_at=self._ends_at,
                requests_remaining=self._requests_remaining,
                tokens_remaining=self._tokens_remaining,
            )

    def _roll(self, now: float) -> None:
        # 调用方必须持有锁
        if now < self._ends_at:
            return
        periods = math.floor((now - self._ends_at) / self.window_seconds) + 1
        self._restore(self._ends_at + periods * self.window_seconds)

    def _restore(self, ends_at: float) -> None:
        self._ends_at = ends_at
        self._requests_remaining = self.max_requests
        self._tokens_remaining = self.max_tokens
