"""
Expiry engine tests: passive and active sliding TTL, timer cancellation.

Run with: pytest tests/test_memokit_expiry.py -v
"""

import threading
import time

import pytest

from memokit.errors import ConfigurationError
from memokit.expiry import ExpiryEngine, threading_scheduler


def _engine(clock, scheduler, **kwargs):
    events = {"evict": [], "expire": [], "refresh": []}
    engine = ExpiryEngine(
        clock=clock,
        scheduler=scheduler,
        on_evict=lambda k, e: events["evict"].append(k),
        on_expire=lambda k, e: events["expire"].append(k),
        on_refresh=lambda k, e: events["refresh"].append(k),
        **kwargs,
    )
    return engine, events


class TestPassiveExpiry:

    def test_hit_before_ttl_miss_after(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100)
        engine.insert("k", engine.new_entry("v"))

        clock.advance(50)
        assert engine.lookup("k").value == "v"

        clock.advance(150)
        assert engine.lookup("k") is None
        assert events["expire"] == ["k"]
        assert len(engine) == 0

    def test_ttl_slides_on_touch(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100)
        engine.insert("k", engine.new_entry("v"))
        for _ in range(5):
            clock.advance(80)
            assert engine.lookup("k") is not None
        assert events["refresh"] == ["k"] * 5

    def test_zero_ttl_never_expires(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=0)
        engine.insert("k", engine.new_entry("v"))
        clock.advance(10 ** 9)
        assert engine.lookup("k").value == "v"
        assert events["refresh"] == []

    def test_passive_schedules_nothing(self, clock, scheduler):
        engine, _ = _engine(clock, scheduler, ttl=100)
        engine.insert("k", engine.new_entry("v"))
        engine.lookup("k")
        assert scheduler.timers == []

    def test_has_honours_ttl(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100)
        engine.insert("k", engine.new_entry("v"))
        assert engine.has("k") is True
        clock.advance(100)
        assert engine.has("k") is False
        assert events["expire"] == ["k"]


class TestActiveExpiry:

    def test_timer_removes_untouched_entry(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100, eviction="active")
        engine.insert("k", engine.new_entry("v"))

        scheduler.advance(150)
        assert engine.keys() == []
        assert events["expire"] == ["k"]

    def test_touch_reschedules(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100, eviction="active")
        engine.insert("k", engine.new_entry("v"))
        first = scheduler.pending[0]

        scheduler.advance(60)
        assert engine.lookup("k") is not None
        assert first.cancelled is True
        assert len(scheduler.pending) == 1

        scheduler.advance(60)
        assert engine.keys() == ["k"]
        scheduler.advance(50)
        assert engine.keys() == []

    def test_overwrite_cancels_previous_timer(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100, eviction="active")
        engine.insert("k", engine.new_entry(1))
        old = scheduler.pending[0]
        engine.insert("k", engine.new_entry(2))
        assert old.cancelled is True
        assert events["refresh"] == ["k"]

    def test_delete_and_clear_cancel_timers(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100, eviction="active")
        engine.insert("a", engine.new_entry(1))
        engine.insert("b", engine.new_entry(2))
        engine.delete("a")
        engine.clear()
        assert scheduler.pending == []
        scheduler.advance(500)
        assert events["expire"] == []

    def test_capacity_eviction_cancels_timer(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100, eviction="active", capacity=1)
        engine.insert("a", engine.new_entry(1))
        engine.insert("b", engine.new_entry(2))
        assert events["evict"] == ["a"]
        assert len(scheduler.pending) == 1
        scheduler.advance(150)
        assert events["expire"] == ["b"]

    def test_stale_timer_ignores_replaced_entry(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100, eviction="active")
        engine.insert("k", engine.new_entry(1))
        stale = scheduler.pending[0]
        engine.insert("k", engine.new_entry(2))

        # fire the cancelled timer anyway, as a racing thread might
        stale.callback()
        assert engine.lookup("k").value == 2
        assert events["expire"] == []

    def test_zero_capacity_schedules_nothing(self, clock, scheduler):
        engine, events = _engine(clock, scheduler, ttl=100, eviction="active", capacity=0)
        engine.insert("k", engine.new_entry(1))
        assert scheduler.pending == []
        assert events["evict"] == ["k"]

    def test_handle_without_cancel_is_rejected(self, clock):
        engine = ExpiryEngine(
            ttl=100, eviction="active", clock=clock, scheduler=lambda delay, fn: object()
        )
        with pytest.raises(ConfigurationError, match="cancel"):
            engine.insert("k", engine.new_entry(1))
        assert engine.keys() == []
        with pytest.raises(ConfigurationError, match="cancel"):
            engine.insert("k", engine.new_entry(1))
        assert engine.keys() == []

    def test_failed_insert_leaves_store_and_evictions_alone(self, clock, scheduler):
        state = {"broken": False}

        def flaky_scheduler(delay, fn):
            if state["broken"]:
                return object()
            return scheduler(delay, fn)

        evicted = []
        engine = ExpiryEngine(
            capacity=1,
            ttl=100,
            eviction="active",
            clock=clock,
            scheduler=flaky_scheduler,
            on_evict=lambda k, e: evicted.append(k),
        )
        engine.insert("a", engine.new_entry(1))

        state["broken"] = True
        with pytest.raises(ConfigurationError):
            engine.insert("b", engine.new_entry(2))
        assert engine.keys() == ["a"]
        assert evicted == []

        state["broken"] = False
        engine.insert("c", engine.new_entry(3))
        assert evicted == ["a"]
        assert engine.keys() == ["c"]

    def test_failed_reschedule_keeps_existing_timer(self, clock, scheduler):
        state = {"broken": False}

        def flaky_scheduler(delay, fn):
            if state["broken"]:
                return object()
            return scheduler(delay, fn)

        engine = ExpiryEngine(ttl=100, eviction="active", clock=clock, scheduler=flaky_scheduler)
        engine.insert("k", engine.new_entry(1))
        original = scheduler.pending[0]

        state["broken"] = True
        clock.advance(10)
        with pytest.raises(ConfigurationError):
            engine.lookup("k")
        assert original.cancelled is False

        scheduler.advance(100)
        assert engine.keys() == []

    def test_listener_errors_are_isolated(self, clock, scheduler):
        def boom(key, entry):
            raise RuntimeError("listener failed")

        engine = ExpiryEngine(
            ttl=100, eviction="active", clock=clock, scheduler=scheduler, on_expire=boom
        )
        engine.insert("k", engine.new_entry(1))
        scheduler.advance(150)
        assert engine.keys() == []


class TestExpiryValidation:

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError):
            ExpiryEngine(eviction="eager")

    def test_negative_ttl(self):
        with pytest.raises(ConfigurationError):
            ExpiryEngine(ttl=-1)


@pytest.mark.slow
class TestRealTimers:

    def test_threading_scheduler_expires_entry(self):
        fired = threading.Event()
        engine = ExpiryEngine(
            ttl=50,
            eviction="active",
            scheduler=threading_scheduler,
            on_expire=lambda k, e: fired.set(),
        )
        engine.insert("k", engine.new_entry(1))
        assert fired.wait(2.0)
        assert engine.keys() == []

    def test_passive_with_monotonic_clock(self):
        engine = ExpiryEngine(ttl=50)
        engine.insert("k", engine.new_entry(1))
        assert engine.lookup("k") is not None
        time.sleep(0.1)
        assert engine.lookup("k") is None
