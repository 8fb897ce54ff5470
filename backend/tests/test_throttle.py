import pytest

from shipmirror.services.provider.throttle import Throttler


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_first_request_does_not_wait():
    clock = _FakeClock()
    throttler = Throttler(0.4, clock=clock, sleep=clock.sleep)

    assert await throttler.wait() == 0.0
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_back_to_back_requests_are_spaced():
    clock = _FakeClock()
    throttler = Throttler(0.4, clock=clock, sleep=clock.sleep)

    await throttler.wait()
    clock.now += 0.1
    waited = await throttler.wait()

    assert waited == pytest.approx(0.3)
    assert clock.sleeps == [pytest.approx(0.3)]


@pytest.mark.asyncio
async def test_no_wait_once_interval_has_elapsed():
    clock = _FakeClock()
    throttler = Throttler(0.4, clock=clock, sleep=clock.sleep)

    await throttler.wait()
    clock.now += 1.0
    assert await throttler.wait() == 0.0


@pytest.mark.asyncio
async def test_spacing_holds_across_many_calls():
    clock = _FakeClock()
    throttler = Throttler.from_rate(150, clock=clock, sleep=clock.sleep)
    stamps = []
    for _ in range(5):
        await throttler.wait()
        stamps.append(clock.now)

    gaps = [b - a for a, b in zip(stamps, stamps[1:])]
    assert all(gap >= 0.4 - 1e-9 for gap in gaps)


def test_from_rate_zero_disables_spacing():
    assert Throttler.from_rate(0).min_interval == 0.0
    assert Throttler.from_rate(150).min_interval == pytest.approx(0.4)
