import asyncio

from services.presence import PresenceMonitor


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_touch_and_expired():
    clock = _Clock()
    monitor = PresenceMonitor(timeout=30, interval=25, clock=clock)
    monitor.touch("a")
    clock.now += 20
    monitor.touch("b")

    assert monitor.expired() == []
    clock.now += 11
    assert monitor.expired() == ["a"]
    clock.now += 30
    assert sorted(monitor.expired()) == ["a", "b"]


def test_touch_refreshes_and_forget_drops():
    clock = _Clock()
    monitor = PresenceMonitor(timeout=30, interval=25, clock=clock)
    monitor.touch("a")
    clock.now += 29
    monitor.touch("a")
    clock.now += 29
    assert monitor.expired() == []
    assert monitor.last_active("a") == 1029.0

    monitor.forget("a")
    assert monitor.last_active("a") is None
    assert len(monitor) == 0


async def test_sweep_hands_stale_connections_to_callback():
    clock = _Clock()
    monitor = PresenceMonitor(timeout=30, interval=25, clock=clock)
    monitor.touch("stale")
    clock.now += 40
    monitor.touch("fresh")
    seen = []

    async def on_expired(cid):
        seen.append(cid)

    assert await monitor.sweep(on_expired) == ["stale"]
    assert seen == ["stale"]
    assert monitor.last_active("stale") is None
    assert monitor.last_active("fresh") is not None


async def test_failing_callback_does_not_stop_sweep():
    clock = _Clock()
    monitor = PresenceMonitor(timeout=1, interval=1, clock=clock)
    monitor.touch("a")
    monitor.touch("b")
    clock.now += 5
    seen = []

    async def on_expired(cid):
        seen.append(cid)
        raise RuntimeError("boom")

    await monitor.sweep(on_expired)
    assert sorted(seen) == ["a", "b"]


async def test_background_task_sweeps_until_stopped():
    monitor = PresenceMonitor(timeout=0.01, interval=0.01)
    monitor.touch("a")
    expired = asyncio.Event()

    async def on_expired(cid):
        expired.set()

    monitor.start(on_expired)
    await asyncio.wait_for(expired.wait(), timeout=2)
    await monitor.stop()
    assert len(monitor) == 0
