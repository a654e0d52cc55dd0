import threading

import pytest

from assist_core.domain.models import ChatTurn, DispatchRequest, DispatchState, QueuedTask
from assist_core.scheduling import AdmissionQueue, RateBudget


def _request(dest=1):
    return DispatchRequest(turns=(ChatTurn(role="user", content="hi"),), context={}, destination=dest)


def _queue(clock, max_requests=100, max_tokens=10000, min_interval=1.2, margin=0.25):
    budget = RateBudget(max_requests=max_requests, max_tokens=max_tokens, window_seconds=60, clock=clock)
    return AdmissionQueue(budget, min_interval=min_interval, safety_margin=margin, clock=clock, sleeper=clock.sleep)


def test_tasks_complete_in_enqueue_order(clock):
    q = _queue(clock)
    done = []
    for i in range(5):
        q.enqueue(QueuedTask(request=_request(i), cost=10, run=lambda i=i: done.append(i)))
    assert q.depth() == 5
    assert q.drain() == 5
    assert done == [0, 1, 2, 3, 4]
    assert q.depth() == 0


def test_start_times_are_spaced_by_min_interval(clock):
    q = _queue(clock, min_interval=1.2)
    starts = []
    for _ in range(4):
        q.enqueue(QueuedTask(request=_request(), cost=1, run=lambda: starts.append(clock())))
    q.drain()
    gaps = [b - a for a, b in zip(starts, starts[1:])]
    assert starts[0] == 0
    assert all(g >= 1.2 - 1e-9 for g in gaps)


def test_spacing_is_measured_from_previous_start(clock):
    q = _queue(clock, min_interval=1.2)
    starts = []

    def slow():
        starts.append(clock())
        clock.advance(5)

    q.enqueue(QueuedTask(request=_request(), cost=1, run=slow))
    q.enqueue(QueuedTask(request=_request(), cost=1, run=lambda: starts.append(clock())))
    q.drain()
    assert starts == [0, 5]
    # 上一个任务已经运行超过最小间隔，不需要额外等待
    assert clock.sleeps == []


def test_head_waits_for_window_reset_when_budget_exhausted(clock):
    q = _queue(clock, max_requests=2, min_interval=1.2, margin=0.25)
    starts = []
    for _ in range(3):
        q.enqueue(QueuedTask(request=_request(), cost=1, run=lambda: starts.append(clock())))
    q.drain()
    assert starts[:2] == [0, 1.2]
    assert starts[2] == pytest.approx(60.25)


def test_failed_task_does_not_block_next(clock):
    q = _queue(clock)
    done = []

    def boom():
        raise RuntimeError("boom")

    q.enqueue(QueuedTask(request=_request(), cost=1, run=boom))
    q.enqueue(QueuedTask(request=_request(), cost=1, run=lambda: done.append("ok")))
    assert q.drain() == 2
    assert done == ["ok"]


def test_enqueue_marks_task_queued(clock):
    q = _queue(clock)
    task = QueuedTask(request=_request(), cost=1, run=lambda: None)
    assert task.state == DispatchState.ESTIMATED
    q.enqueue(task)
    assert task.state == DispatchState.QUEUED


def test_worker_thread_drains_concurrent_enqueues():
    budget = RateBudget(max_requests=1000, max_tokens=100000, window_seconds=60)
    q = AdmissionQueue(budget, min_interval=0.001, safety_margin=0.0)
    done = []
    lock = threading.Lock()
    running = []
    peak = []

    def make(tag):
        def run():
            with lock:
                running.append(tag)
                peak.append(len(running))
            done.append(tag)
            with lock:
                running.remove(tag)
        return run

    def producer(p):
        for i in range(10):
            q.enqueue(QueuedTask(request=_request(p), cost=1, run=make((p, i))))

    q.start()
    try:
        threads = [threading.Thread(target=producer, args=(p,)) for p in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert q.wait_idle(timeout=10)
    finally:
        q.stop(timeout=5)

    assert len(done) == 40
    assert max(peak) == 1
    for p in range(4):
        assert [i for (pp, i) in done if pp == p] == list(range(10))


def test_drain_refused_while_worker_running():
    budget = RateBudget(max_requests=10, max_tokens=100, window_seconds=60)
    q = AdmissionQueue(budget, min_interval=0.0)
    q.start()
    try:
        with pytest.raises(RuntimeError):
            q.drain()
    finally:
        q.stop(timeout=5)


def test_restart_refused_while_previous_worker_is_stopping():
    budget = RateBudget(max_requests=100, max_tokens=1000, window_seconds=60)
    sleeping = threading.Event()
    gate = threading.Event()

    def gated_sleep(seconds):
        sleeping.set()
        gate.wait(5)

    q = AdmissionQueue(budget, min_interval=10, safety_margin=0.0, sleeper=gated_sleep)
    lock = threading.Lock()
    running = []
    peak = []
    done = []

    def make(tag):
        def run():
            with lock:
                running.append(tag)
                peak.append(len(running))
            done.append(tag)
            with lock:
                running.remove(tag)
        return run

    for i in range(3):
        q.enqueue(QueuedTask(request=_request(), cost=1, run=make(i)))

    q.start()
    # 第一个任务执行后，worker 卡在第二个任务的间隔等待里
    assert sleeping.wait(5)
    assert q.stop(timeout=0.1) is False
    with pytest.raises(RuntimeError):
        q.start()

    gate.set()
    assert q.stop(timeout=5) is True
    # 停止后被准入的任务不会执行，仍留在队列里
    assert done == [0]
    assert q.depth() == 2

    q.start()
    try:
        assert q.wait_idle(timeout=5)
    finally:
        q.stop(timeout=5)
    assert done == [0, 1, 2]
    assert max(peak) == 1


def test_start_refused_during_drain(clock):
    q = _queue(clock)
    errors = []

    def try_start():
        try:
            q.start()
        except RuntimeError as e:
            errors.append(str(e))

    q.enqueue(QueuedTask(request=_request(), cost=1, run=try_start))
    assert q.drain() == 1
    assert len(errors) == 1
