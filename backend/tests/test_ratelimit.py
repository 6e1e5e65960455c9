from ratelimit import FixedWindowLimiter


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_limit_per_key_and_window_reset():
    clock = FakeClock()
    limiter = FixedWindowLimiter(limit=2, window_seconds=60, clock=clock)

    assert limiter.hit("a") and limiter.hit("a")
    assert not limiter.hit("a")
    assert limiter.hit("b")

    clock.now = 61
    assert limiter.hit("a")


def test_reset_clears_key():
    limiter = FixedWindowLimiter(limit=1, window_seconds=60, clock=FakeClock())
    assert limiter.hit("a")
    assert not limiter.hit("a")
    limiter.reset("a")
    assert limiter.hit("a")
