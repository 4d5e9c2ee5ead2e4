"""Tests for the CBNAAT diagnostic test lifecycle."""

import random
from collections import Counter

import pytest

from xdr_backend.models import AlertType, DiagnosticResult, LifecycleState, ResistanceStatus
from xdr_backend.services.cbnaat_lifecycle import (
    DiagnosticTestLifecycle,
    OutcomeCategory,
    OutcomeDistribution,
)

ALWAYS_XDR = OutcomeDistribution(negative=0.0, mdr=0.0, xdr=1.0)
ALWAYS_MDR = OutcomeDistribution(negative=0.0, mdr=1.0, xdr=0.0)
ALWAYS_NEGATIVE = OutcomeDistribution(negative=1.0, mdr=0.0, xdr=0.0)


def make_lifecycle(alerts, registry, distribution, clock, duration=90):
    return DiagnosticTestLifecycle(
        alerts, registry, duration=duration, distribution=distribution, rng=random.Random(1), now=clock.now
    )


class TestStartAndTick:
    """Test suite for test creation and countdown."""

    def test_start_test(self, lifecycle):
        test = lifecycle.start_test("P002")
        assert test.test_id == "T001"
        assert test.state == LifecycleState.PROCESSING
        assert test.time_remaining == 90
        assert test.result is None
        assert test.resistance_profile is None

    def test_unknown_patient_is_accepted(self, lifecycle):
        test = lifecycle.start_test("P999")
        assert lifecycle.get_test(test.test_id).patient_id == "P999"

    def test_tick_decrements_processing_tests(self, lifecycle):
        test = lifecycle.start_test("P002")
        assert lifecycle.tick() == []
        assert lifecycle.get_test(test.test_id).time_remaining == 89

    def test_progress(self, lifecycle):
        test = lifecycle.start_test("P002")
        for _ in range(45):
            lifecycle.tick()
        assert lifecycle.get_test(test.test_id).progress == 50.0

    def test_test_completes_when_countdown_reaches_zero(self, alerts, registry, clock):
        lifecycle = make_lifecycle(alerts, registry, ALWAYS_NEGATIVE, clock, duration=3)
        test = lifecycle.start_test("P002")
        assert lifecycle.tick() == []
        assert lifecycle.tick() == []
        completed = lifecycle.tick()
        assert [t.test_id for t in completed] == [test.test_id]

        stored = lifecycle.get_test(test.test_id)
        assert stored.state == LifecycleState.COMPLETED
        assert stored.time_remaining == 0

        # Completed tests are left alone by later ticks
        assert lifecycle.tick() == []
        assert lifecycle.get_test(test.test_id).time_remaining == 0


class TestResolve:
    """Test suite for outcome resolution."""

    def test_xdr_resolution(self, alerts, registry, clock):
        lifecycle = make_lifecycle(alerts, registry, ALWAYS_XDR, clock)
        test = lifecycle.start_test("P002")
        resolved = lifecycle.resolve(test.test_id)

        assert resolved.result == DiagnosticResult.POSITIVE
        assert resolved.xdr_detected is True
        assert resolved.mdr_detected is True
        assert resolved.pre_xdr is False
        assert set(resolved.resistance_profile) == {"rifampicin", "isoniazid", "fluoroquinolones", "injectables"}

        [alert] = alerts.get_alerts()
        assert alert.alert_type == AlertType.XDR_OUTBREAK
        assert alert.level == 5
        assert alert.patient_id == "P002"
        assert registry.get_patient("P002").resistance_status == ResistanceStatus.XDR

    def test_mdr_resolution(self, alerts, registry, clock):
        lifecycle = make_lifecycle(alerts, registry, ALWAYS_MDR, clock)
        resolved = lifecycle.resolve(lifecycle.start_test("P002").test_id)

        assert resolved.result == DiagnosticResult.POSITIVE
        assert resolved.mdr_detected is True
        assert resolved.xdr_detected is False
        [alert] = alerts.get_alerts()
        assert alert.alert_type == AlertType.MDR_DETECTION
        assert alert.level == 4
        assert registry.get_patient("P002").resistance_status == ResistanceStatus.MDR

    def test_mdr_result_never_downgrades_patient(self, alerts, registry, clock):
        lifecycle = make_lifecycle(alerts, registry, ALWAYS_MDR, clock)
        lifecycle.resolve(lifecycle.start_test("P003").test_id)
        assert registry.get_patient("P003").resistance_status == ResistanceStatus.XDR

    def test_negative_resolution(self, alerts, registry, clock):
        lifecycle = make_lifecycle(alerts, registry, ALWAYS_NEGATIVE, clock)
        resolved = lifecycle.resolve(lifecycle.start_test("P002").test_id)

        assert resolved.result == DiagnosticResult.NEGATIVE
        assert resolved.resistance_profile is None
        assert resolved.mdr_detected is False
        assert alerts.get_alerts() == []
        assert registry.get_patient("P002").resistance_status == ResistanceStatus.NONE

    def test_resolve_is_idempotent(self, alerts, registry, clock):
        lifecycle = make_lifecycle(alerts, registry, ALWAYS_XDR, clock)
        test = lifecycle.start_test("P002")
        first = lifecycle.resolve(test.test_id)
        alert_count = len(alerts.get_alerts())

        second = lifecycle.resolve(test.test_id)
        assert second.state == first.state
        assert second.result == first.result
        assert second.resistance_profile == first.resistance_profile
        assert second.completed_at == first.completed_at
        assert len(alerts.get_alerts()) == alert_count

    def test_resolve_unknown_test(self, lifecycle):
        assert lifecycle.resolve("T999") is None

    def test_repeat_xdr_results_share_one_open_alert(self, alerts, registry, clock):
        lifecycle = make_lifecycle(alerts, registry, ALWAYS_XDR, clock)
        lifecycle.resolve(lifecycle.start_test("P002").test_id)
        lifecycle.resolve(lifecycle.start_test("P002").test_id)
        assert len(alerts.get_alerts()) == 1

    def test_unregistered_patient_still_alerts(self, alerts, registry, clock):
        lifecycle = make_lifecycle(alerts, registry, ALWAYS_XDR, clock)
        lifecycle.resolve(lifecycle.start_test("P999").test_id)
        assert alerts.get_alerts()[0].patient_id == "P999"
        assert registry.get_patient("P999") is None

    def test_seeded_runs_are_reproducible(self, alerts, registry, clock):
        def run(seed):
            lifecycle = DiagnosticTestLifecycle(alerts, None, rng=random.Random(seed), now=clock.now)
            return [lifecycle.resolve(lifecycle.start_test("P002").test_id).result for _ in range(50)]

        assert run(7) == run(7)


class TestOutcomeDistribution:
    def test_probabilities_must_sum_to_one(self):
        with pytest.raises(ValueError):
            OutcomeDistribution(negative=0.5, mdr=0.25, xdr=0.15)

    def test_observed_frequencies(self):
        rng = random.Random(2024)
        distribution = OutcomeDistribution()
        n = 10_000
        counts = Counter(distribution.draw(rng) for _ in range(n))
        assert counts[OutcomeCategory.NEGATIVE] / n == pytest.approx(0.60, abs=0.02)
        assert counts[OutcomeCategory.MDR] / n == pytest.approx(0.25, abs=0.02)
        assert counts[OutcomeCategory.XDR] / n == pytest.approx(0.15, abs=0.02)


class TestStatusSummary:
    def test_counts(self, alerts, registry, clock):
        lifecycle = make_lifecycle(alerts, registry, ALWAYS_XDR, clock)
        lifecycle.start_test("P001")
        lifecycle.resolve(lifecycle.start_test("P002").test_id)
        summary = lifecycle.status_summary()
        assert summary == {
            "total": 2,
            "processing": 1,
            "completed": 1,
            "positive": 1,
            "mdr_detected": 1,
            "xdr_detected": 1,
        }
