import asyncio

import pytest

from resume_mailer.rate_limit import RateLimiter, client_id_from_headers


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.mark.asyncio
async def test_admits_up_to_max_then_rejects():
    clock = FakeClock()
    limiter = RateLimiter(3600, 5, clock=clock)

    results = [await limiter.admit("1.2.3.4") for _ in range(6)]

    assert results == [True, True, True, True, True, False]
    assert limiter.records["1.2.3.4"].count == 5


@pytest.mark.asyncio
async def test_clients_are_counted_independently():
    limiter = RateLimiter(3600, 1, clock=FakeClock())
    assert await limiter.admit("a") is True
    assert await limiter.admit("a") is False
    assert await limiter.admit("b") is True


@pytest.mark.asyncio
async def test_window_restarts_after_expiry():
    clock = FakeClock()
    limiter = RateLimiter(60, 2, clock=clock)
    assert await limiter.admit("ip")
    assert await limiter.admit("ip")
    assert not await limiter.admit("ip")

    # Exactly at the reset instant the window is still active
    clock.advance(60)
    assert not await limiter.admit("ip")

    clock.advance(0.001)
    assert await limiter.admit("ip")
    record = limiter.records["ip"]
    assert record.count == 1
    assert record.window_reset_at == pytest.approx(clock.now + 60)


@pytest.mark.asyncio
async def test_concurrent_admissions_never_exceed_max():
    limiter = RateLimiter(3600, 5, clock=FakeClock())

    results = await asyncio.gather(*(limiter.admit("burst") for _ in range(50)))

    assert results.count(True) == 5
    assert limiter.records["burst"].count == 5


@pytest.mark.asyncio
async def test_empty_client_id_uses_unknown_bucket():
    limiter = RateLimiter(3600, 1, clock=FakeClock())
    assert await limiter.admit("")
    assert not await limiter.admit("")
    assert "unknown" in limiter.records


@pytest.mark.asyncio
async def test_retry_after_counts_remaining_seconds():
    clock = FakeClock(0)
    limiter = RateLimiter(100, 1, clock=clock)
    assert limiter.retry_after("x") == 0

    await limiter.admit("x")
    clock.advance(40.5)
    assert limiter.retry_after("x") == 60

    clock.advance(100)
    assert limiter.retry_after("x") == 0


@pytest.mark.asyncio
async def test_sweep_removes_only_expired_records():
    clock = FakeClock()
    changes = []
    limiter = RateLimiter(10, 5, clock=clock, on_change=changes.append)

    await limiter.admit("old")
    clock.advance(5)
    await limiter.admit("new")
    clock.advance(6)

    removed = await limiter.sweep()

    assert removed == 1
    assert list(limiter.records) == ["new"]
    assert changes[-1] == 1


@pytest.mark.asyncio
async def test_sweep_does_not_change_admission_outcome():
    clock = FakeClock()
    limiter = RateLimiter(10, 1, clock=clock)
    await limiter.admit("ip")
    clock.advance(11)

    # An expired record is treated as absent whether or not it was swept
    assert await limiter.admit("ip")


@pytest.mark.parametrize("window,maximum", [(0, 5), (3600, 0), (-1, 5), (3600, True), (1.5, 5)])
def test_rejects_invalid_limits(window, maximum):
    with pytest.raises(ValueError):
        RateLimiter(window, maximum)


@pytest.mark.asyncio
async def test_background_sweep_start_and_stop():
    clock = FakeClock()
    limiter = RateLimiter(10, 5, sweep_interval=0.01, clock=clock)
    await limiter.admit("ip")
    clock.advance(20)

    limiter.start()
    for _ in range(100):
        if not limiter.records:
            break
        await asyncio.sleep(0.01)
    await limiter.stop()

    assert limiter.records == {}
    # Stopping twice is a no-op
    await limiter.stop()


def test_client_id_prefers_forwarded_for():
    headers = {"x-forwarded-for": " 203.0.113.7 , 10.0.0.1", "x-real-ip": "198.51.100.2"}
    assert client_id_from_headers(headers, "127.0.0.1") == "203.0.113.7"


def test_client_id_falls_back_to_real_ip_then_remote():
    assert client_id_from_headers({"x-real-ip": "198.51.100.2"}, "127.0.0.1") == "198.51.100.2"
    assert client_id_from_headers({"x-forwarded-for": " , "}, "127.0.0.1") == "127.0.0.1"
    assert client_id_from_headers({}, None) == "unknown"
