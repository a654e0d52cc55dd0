import threading

from assist_core.scheduling.rate_budget import RateBudget


def test_reserve_decrements_both_counters(clock):
    budget = RateBudget(max_requests=3, max_tokens=100, window_seconds=60, clock=clock)
    assert budget.reserve(40)
    window = budget.snapshot()
    assert window.requests_remaining == 2
    assert window.tokens_remaining == 60


def test_zero_cost_counts_as_one_token(clock):
    budget = RateBudget(max_requests=3, max_tokens=100, window_seconds=60, clock=clock)
    assert budget.reserve(0)
    assert budget.snapshot().tokens_remaining == 99


def test_reserve_fails_closed_on_request_ceiling(clock):
    budget = RateBudget(max_requests=2, max_tokens=1000, window_seconds=60, clock=clock)
    assert budget.reserve(1)
    assert budget.reserve(1)
    assert not budget.reserve(1)
    window = budget.snapshot()
    assert window.requests_remaining == 0
    assert window.tokens_remaining == 998


def test_reserve_fails_closed_on_token_ceiling_without_side_effect(clock):
    budget = RateBudget(max_requests=10, max_tokens=100, window_seconds=60, clock=clock)
    assert budget.reserve(70)
    assert not budget.reserve(31)
    window = budget.snapshot()
    assert window.requests_remaining == 9
    assert window.tokens_remaining == 30
    assert budget.reserve(30)


def test_window_boundary_restores_maxima(clock):
    budget = RateBudget(max_requests=1, max_tokens=100, window_seconds=60, clock=clock)
    assert budget.reserve(10)
    assert not budget.reserve(10)
    clock.now = 59.5
    assert not budget.reserve(10)
    assert budget.seconds_until_reset() == 0.5
    clock.now = 60.0
    assert budget.reserve(10)
    # 新窗口的边界仍在固定网格上
    assert budget.snapshot().ends_at == 120


def test_window_skips_idle_periods_on_grid(clock):
    budget = RateBudget(max_requests=1, max_tokens=100, window_seconds=60, clock=clock)
    budget.reserve(1)
    clock.advance(250)
    window = budget.snapshot()
    assert window.ends_at == 300
    assert window.requests_remaining == 1


def test_reserved_sum_never_exceeds_maxima(clock):
    budget = RateBudget(max_requests=50, max_tokens=500, window_seconds=60, clock=clock)
    reserved_tokens = 0
    reserved_requests = 0
    for cost in [37, 120, 5, 90, 200, 64, 1, 33, 80, 10, 2, 45]:
        if budget.reserve(cost):
            reserved_tokens += cost
            reserved_requests += 1
    assert reserved_tokens <= 500
    assert reserved_requests <= 50
    assert budget.snapshot().tokens_remaining == 500 - reserved_tokens


def test_oversized_cost_is_admitted_only_in_fresh_window(clock):
    budget = RateBudget(max_requests=10, max_tokens=100, window_seconds=60, clock=clock)
    assert budget.reserve(500)
    assert budget.snapshot().tokens_remaining == 0
    assert not budget.reserve(1)

    clock.advance(60)
    assert budget.reserve(1)
    assert not budget.reserve(500)


def test_reset_starts_new_window(clock):
    budget = RateBudget(max_requests=1, max_tokens=10, window_seconds=60, clock=clock)
    budget.reserve(5)
    clock.advance(10)
    budget.reset()
    window = budget.snapshot()
    assert window.requests_remaining == 1
    assert window.tokens_remaining == 10
    assert window.ends_at == 70


def _hammer(budget, costs, threads=8):
    barrier = threading.Barrier(threads)
    granted = []
    lock = threading.Lock()

    def worker(chunk):
        barrier.wait()
        for cost in chunk:
            if budget.reserve(cost):
                with lock:
                    granted.append(cost)

    chunks = [costs[i::threads] for i in range(threads)]
    pool = [threading.Thread(target=worker, args=(chunk,)) for chunk in chunks]
    for t in pool:
        t.start()
    for t in pool:
        t.join()
    return granted


def test_concurrent_reserve_never_exceeds_request_ceiling(clock):
    budget = RateBudget(max_requests=50, max_tokens=100000, window_seconds=60, clock=clock)
    granted = _hammer(budget, [1] * 800)
    assert len(granted) == 50
    assert budget.snapshot().requests_remaining == 0


def test_concurrent_reserve_never_exceeds_token_ceiling(clock):
    budget = RateBudget(max_requests=10000, max_tokens=1000, window_seconds=60, clock=clock)
    granted = _hammer(budget, [7] * 800)
    # 1000 // 7 = 142，剩余 6 个 token 不够再放行一次
    assert len(granted) == 142
    assert sum(granted) == 1000 - budget.snapshot().tokens_remaining
    assert budget.snapshot().tokens_remaining == 6
