import pytest


class FakeClock:
    """可控时钟：sleep 只推进时间并记录等待时长。"""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(0.0, seconds)

    def advance(self, seconds: float) -> None:
        self.now += seconds


class KeyStub:
    def __init__(self, key="sk-test-0123456789"):
        self.key = key

    def get(self):
        return self.key

    def set(self, key):
        self.key = (key or "").strip() or None
        return self.key is not None

    def clear(self):
        self.key = None


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def keys():
    return KeyStub()
