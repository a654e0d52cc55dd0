"""串行准入队列。

- 任务严格按入队顺序执行，同一时刻最多一个任务在运行。
- 相邻两个任务的开始时间至少间隔 min_interval（按开始时间计，不是结束时间）。
- 队首任务只有在 RateBudget.reserve 成功后才会被放行；失败时等待到当前窗口
  结束再加一个安全余量，然后重新检查。
- 单个任务抛出的异常只记录日志，不影响后续任务。

可以用 start() 在后台线程里消费，也可以用 drain() 在当前线程里同步消费。
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Optional

from assist_core.domain.models import DispatchState, QueuedTask
from assist_core.infrastructure.logging.logger import logger
from assist_core.scheduling.rate_budget import RateBudget


class AdmissionQueue:
    def __init__(
        self,
        budget: RateBudget,
        min_interval: float = 1.2,
        safety_margin: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self._budget = budget
        self._min_interval = min_interval
        self._safety_margin = safety_margin
        self._clock = clock
        self._sleep = sleeper
        self._tasks: Deque[QueuedTask] = deque()
        self._cond = threading.Condition()
        self._in_flight = False
        self._draining = False
        self._stopped = False
        self._last_start: Optional[float] = None
        self._worker: Optional[threading.Thread] = None

    @property
    def budget(self) -> RateBudget:
        return self._budget

    def enqueue(self, task: QueuedTask) -> None:
        with self._cond:
            task.state = DispatchState.QUEUED
            self._tasks.append(task)
            depth = len(self._tasks)
            self._cond.notify_all()
        logger.info(
            "Task enqueued",
            extra={"extra": {"task_id": task.id, "cost": task.cost, "queue_depth": depth}},
        )

    def depth(self) -> int:
        """尚未开始执行的任务数（包含正在等待预算的队首任务）。"""

        with self._cond:
            return len(self._tasks)

    # ---- 后台线程模式 ----

    def start(self) -> None:
        """启动后台 worker。

        上一个 worker 仍在退出中（stop 超时）或 drain() 正在进行时拒绝启动，
        保证同一时刻只有一个消费者。
        """
        with self._cond:
            if self._draining:
                raise RuntimeError("queue is being drained")
            if self._worker is not None and self._worker.is_alive():
                if self._stopped:
                    raise RuntimeError("previous worker thread is still stopping")
                return
            self._stopped = False
            self._worker = threading.Thread(target=self._worker_loop, name="admission-queue", daemon=True)
            self._worker.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """通知 worker 退出并等待，返回 worker 是否已经结束。"""

        with self._cond:
            self._stopped = True
            self._cond.notify_all()
            worker = self._worker
        if worker is not None:
            worker.join(timeout)
            if worker.is_alive():
                logger.warning("Worker did not stop in time", extra={"extra": {"timeout": timeout}})
                return False
        with self._cond:
            if self._worker is worker:
                self._worker = None
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """等待队列清空且没有任务在执行。"""

        with self._cond:
            return self._cond.wait_for(lambda: not self._tasks and not self._in_flight, timeout)

    def _worker_loop(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._tasks or self._stopped)
                if self._stopped:
                    return
                head = self._tasks[0]
            self._process(head, stoppable=True)

    # ---- 同步模式 ----

    def drain(self) -> int:
        """在当前线程里依次执行所有待处理任务，返回执行的任务数。"""

        with self._cond:
            if self._worker is not None and self._worker.is_alive():
                raise RuntimeError("queue is already drained by a worker thread")
            if self._draining:
                raise RuntimeError("queue is already being drained")
            self._draining = True
        count = 0
        try:
            while True:
                with self._cond:
                    if not self._tasks:
                        return count
                    head = self._tasks[0]
                self._process(head)
                count += 1
        finally:
            with self._cond:
                self._draining = False

    # ---- 准入与执行 ----

    def _process(self, head: QueuedTask, stoppable: bool = False) -> None:
        self._admit(head)
        with self._cond:
            if stoppable and self._stopped:
                # 已占用的预算不退还，任务留在队首等待下一个消费者
                logger.info("Worker stopped before running task", extra={"extra": {"task_id": head.id}})
                return
            task = self._tasks.popleft()
            self._in_flight = True
        try:
            self._run(task)
        finally:
            with self._cond:
                self._in_flight = False
                self._cond.notify_all()

    def _admit(self, task: QueuedTask) -> None:
        if self._last_start is not None:
            gap = self._min_interval - (self._clock() - self._last_start)
            if gap > 0:
                self._sleep(gap)
        while not self._budget.reserve(task.cost):
            wait = self._budget.seconds_until_reset() + self._safety_margin
            logger.info(
                "Rate budget exhausted, waiting for window reset",
                extra={"extra": {"task_id": task.id, "cost": task.cost, "wait_seconds": round(wait, 3)}},
            )
            self._sleep(wait)

    def _run(self, task: QueuedTask) -> None:
        self._last_start = self._clock()
        logger.info("Task started", extra={"extra": {"task_id": task.id}})
        try:
            task.run()
        except Exception:
            logger.exception("Task failed", extra={"extra": {"task_id": task.id}})
        else:
            logger.info("Task finished", extra={"extra": {"task_id": task.id, "state": task.state.value}})
