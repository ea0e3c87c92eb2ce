"""Tests for the per-caller admission gate."""

from __future__ import annotations

import threading

import pytest

from sqlgate.security.rate_limit import AdmissionDecision, AdmissionGate, InMemoryWindowStore

from conftest import FakeClock


@pytest.fixture
def gate(clock: FakeClock) -> AdmissionGate:
    return AdmissionGate(window_seconds=60, max_requests=10, clock=clock)


class TestAdmissionGate:
    def test_first_request_opens_window(self, gate, clock):
        decision = gate.check("10.0.0.1")
        assert decision == AdmissionDecision(admitted=True, remaining=9)
        window = gate.store.get("10.0.0.1")
        assert window.window_start == clock.now
        assert window.request_count == 1

    def test_eleventh_request_is_rejected(self, gate, clock):
        for i in range(10):
            assert gate.check("10.0.0.1").admitted, f"request {i + 1} should be admitted"
            clock.advance(1)

        decision = gate.check("10.0.0.1")

        assert not decision.admitted
        assert decision.remaining == 0
        # window opened 10s ago
        assert decision.retry_after == pytest.approx(50)
        assert decision.retry_after_seconds == 50

    def test_rejection_does_not_count(self, gate):
        for _ in range(15):
            gate.check("c")
        assert gate.store.get("c").request_count == 10

    def test_window_resets_after_expiry(self, gate, clock):
        for _ in range(10):
            gate.check("c")
        assert not gate.check("c").admitted

        clock.advance(61)
        decision = gate.check("c")

        assert decision.admitted
        assert decision.remaining == 9
        assert gate.store.get("c").request_count == 1
        assert gate.store.get("c").window_start == clock.now

    def test_window_boundary_is_inclusive(self, gate, clock):
        """At exactly start + window the old window still applies."""
        for _ in range(10):
            gate.check("c")
        clock.advance(60)
        assert not gate.check("c").admitted
        clock.advance(0.001)
        assert gate.check("c").admitted

    def test_callers_are_independent(self, gate):
        for _ in range(10):
            gate.check("a")
        assert not gate.check("a").admitted
        assert gate.check("b").admitted

    def test_remaining_counts_down(self, gate):
        assert [gate.check("c").remaining for _ in range(3)] == [9, 8, 7]

    def test_prune_drops_expired_windows(self, gate, clock):
        gate.check("old")
        clock.advance(30)
        gate.check("fresh")
        clock.advance(31)

        assert gate.prune() == 1
        assert gate.store.get("old") is None
        assert gate.store.get("fresh") is not None
        assert len(gate.store) == 1

    def test_expired_windows_swept_by_later_checks(self, gate, clock):
        for i in range(50):
            gate.check(f"10.0.1.{i}")
        clock.advance(61)

        gate.check("new")

        assert len(gate.store) == 1
        assert gate.store.get("new") is not None

    def test_no_sweep_within_a_window(self, gate, clock):
        for i in range(50):
            gate.check(f"10.0.1.{i}")
        clock.advance(30)

        gate.check("new")

        assert len(gate.store) == 51

    @pytest.mark.parametrize("kwargs", [{"window_seconds": 0}, {"max_requests": 0}])
    def test_invalid_parameters(self, kwargs):
        with pytest.raises(ValueError):
            AdmissionGate(**kwargs)


class TestConcurrency:
    def test_no_lost_updates_for_one_caller(self, clock):
        """Concurrent checks for the same caller all land in the count."""
        gate = AdmissionGate(window_seconds=60, max_requests=100_000, clock=clock)
        threads_count, per_thread = 16, 250
        barrier = threading.Barrier(threads_count)

        def hammer():
            barrier.wait()
            for _ in range(per_thread):
                gate.check("shared")

        threads = [threading.Thread(target=hammer) for _ in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert gate.store.get("shared").request_count == threads_count * per_thread

    def test_exactly_max_admitted_under_contention(self, clock):
        gate = AdmissionGate(window_seconds=60, max_requests=10, clock=clock)
        admitted = []
        lock = threading.Lock()
        barrier = threading.Barrier(20)

        def attempt():
            barrier.wait()
            decision = gate.check("shared")
            with lock:
                admitted.append(decision.admitted)

        threads = [threading.Thread(target=attempt) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert admitted.count(True) == 10

    def test_prune_while_updating(self, clock):
        store = InMemoryWindowStore()
        gate = AdmissionGate(store=store, window_seconds=60, max_requests=100_000, clock=clock)
        stop = threading.Event()

        def pruner():
            while not stop.is_set():
                gate.prune()

        thread = threading.Thread(target=pruner)
        thread.start()
        try:
            for _ in range(2000):
                gate.check("busy")
        finally:
            stop.set()
            thread.join()

        # nothing expired, so pruning never discarded a live window
        assert store.get("busy").request_count == 2000


class TestAdmissionDecision:
    def test_retry_after_rounds_up(self):
        assert AdmissionDecision(False, 0, 59.2).retry_after_seconds == 60

    def test_retry_after_at_least_one_second(self):
        assert AdmissionDecision(False, 0, 0.0).retry_after_seconds == 1

    def test_admitted_has_no_retry(self):
        assert AdmissionDecision(True, 5).retry_after_seconds == 0
