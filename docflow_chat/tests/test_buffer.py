import asyncio

import pytest

from docflow_chat.engine.buffer import ThrottledBuffer


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _buffer(clock, interval=0.05):
    applied = []
    buf = ThrottledBuffer(lambda c, r: applied.append((c, r)), min_interval=interval, clock=clock)
    return buf, applied


def test_first_push_flushes_immediately():
    buf, applied = _buffer(FakeClock())
    buf.push("He")
    assert applied == [("He", "")]
    assert not buf.pending


def test_pushes_within_interval_are_coalesced_in_order():
    clock = FakeClock()
    buf, applied = _buffer(clock)
    buf.push("a")
    clock.now += 0.01
    buf.push("b", "r1")
    clock.now += 0.01
    buf.push("c", "r2")
    assert applied == [("a", "")]
    assert buf.pending
    clock.now += 0.05
    buf.push("d")
    assert applied == [("a", ""), ("bcd", "r1r2")]


def test_close_forces_final_flush_and_rejects_later_pushes():
    clock = FakeClock()
    buf, applied = _buffer(clock)
    buf.push("a")
    buf.push("b")
    buf.close()
    assert applied == [("a", ""), ("b", "")]
    assert buf.closed
    with pytest.raises(RuntimeError):
        buf.push("c")


def test_flush_without_pending_is_noop():
    buf, applied = _buffer(FakeClock())
    buf.flush()
    buf.close()
    assert applied == []


def test_trailing_flush_runs_on_event_loop():
    async def scenario():
        clock = FakeClock()
        buf, applied = _buffer(clock, interval=0.01)
        buf.push("a")
        buf.push("b")
        assert applied == [("a", "")]
        await asyncio.sleep(0.05)
        return applied

    assert asyncio.run(scenario()) == [("a", ""), ("b", "")]


def test_discard_drops_pending_and_disarms_timer():
    async def scenario():
        applied = []
        buf = ThrottledBuffer(lambda c, r: applied.append(c), min_interval=0.02)
        buf.push("a")
        buf.push("stale")
        assert buf.pending
        buf.discard()
        await asyncio.sleep(0.05)
        assert applied == ["a"]
        assert buf.closed and not buf.pending
        with pytest.raises(RuntimeError):
            buf.push("x")

    asyncio.run(scenario())
