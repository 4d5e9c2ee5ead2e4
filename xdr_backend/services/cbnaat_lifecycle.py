import copy
import itertools
import logging
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from xdr_backend.config import DEFAULT_P_MDR, DEFAULT_P_NEGATIVE, DEFAULT_P_XDR
from xdr_backend.models import (
    FLUOROQUINOLONES,
    INJECTABLES,
    ISONIAZID,
    RIFAMPICIN,
    AlertType,
    DiagnosticResult,
    DiagnosticTest,
    LifecycleState,
    ResistanceStatus,
    ResolutionOutcome,
    Susceptibility,
)

logger = logging.getLogger(__name__)

DEFAULT_TEST_DURATION = 90

XDR_ALERT_DESCRIPTION = "Extensively Drug-Resistant TB confirmed - Immediate containment required"
MDR_ALERT_DESCRIPTION = "Multi-Drug Resistant TB confirmed - Enhanced isolation required"


class OutcomeCategory(Enum):
    NEGATIVE = "negative"
    MDR = "mdr"
    XDR = "xdr"


RESISTANCE_PROFILES: Dict[OutcomeCategory, Dict[str, Susceptibility]] = {
    OutcomeCategory.XDR: {
        RIFAMPICIN: Susceptibility.RESISTANT,
        ISONIAZID: Susceptibility.RESISTANT,
        FLUOROQUINOLONES: Susceptibility.RESISTANT,
        INJECTABLES: Susceptibility.RESISTANT,
    },
    OutcomeCategory.MDR: {
        RIFAMPICIN: Susceptibility.RESISTANT,
        ISONIAZID: Susceptibility.RESISTANT,
    },
}


@dataclass(frozen=True)
class OutcomeDistribution:
    """Categorical distribution a completed test is drawn from."""
    negative: float = DEFAULT_P_NEGATIVE
    mdr: float = DEFAULT_P_MDR
    xdr: float = DEFAULT_P_XDR

    def __post_init__(self):
        total = self.negative + self.mdr + self.xdr
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Outcome probabilities must sum to 1.0, got {total:.4f}")

    def draw(self, rng: random.Random) -> OutcomeCategory:
        sample = rng.random()
        if sample < self.xdr:
            return OutcomeCategory.XDR
        if sample < self.xdr + self.mdr:
            return OutcomeCategory.MDR
        return OutcomeCategory.NEGATIVE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DiagnosticTestLifecycle:
    """
    Owns CBNAAT test records and drives them from Processing to Completed.
    NOTE: Alerts and patient updates are dispatched after the tests lock is released
    """

    def __init__(
        self,
        alerts,
        registry=None,
        duration: int = DEFAULT_TEST_DURATION,
        distribution: Optional[OutcomeDistribution] = None,
        rng: Optional[random.Random] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.alerts = alerts
        self.registry = registry
        self.duration = duration
        self.distribution = distribution or OutcomeDistribution()
        self.rng = rng or random.Random()
        self._now = now
        self._ids = itertools.count(1)
        self._tests: Dict[str, DiagnosticTest] = {}
        self._lock = threading.Lock()

    def _next_id(self) -> str:
        while True:
            test_id = f"T{next(self._ids):03d}"
            if test_id not in self._tests:
                return test_id

    def start_test(self, patient_id: str) -> DiagnosticTest:
        """Queue a new test. The patient id is not checked against the registry."""
        with self._lock:
            test = DiagnosticTest(
                test_id=self._next_id(),
                patient_id=patient_id,
                time_remaining=self.duration,
                duration=self.duration,
                started_at=self._now(),
            )
            self._tests[test.test_id] = test
        logger.info(f"CBNAAT test {test.test_id} started for patient {patient_id}")
        return copy.deepcopy(test)

    def restore(self, test: DiagnosticTest) -> DiagnosticTest:
        """Insert an existing test record (seed data)."""
        with self._lock:
            if test.test_id in self._tests:
                raise ValueError(f"Duplicate test id {test.test_id}")
            self._tests[test.test_id] = copy.deepcopy(test)
        return copy.deepcopy(test)

    def tick(self) -> List[DiagnosticTest]:
        """Advance every processing test by one time unit. Returns tests completed by this tick."""
        outcomes = []
        with self._lock:
            for test in self._tests.values():
                if test.state != LifecycleState.PROCESSING:
                    continue
                test.time_remaining = max(0, test.time_remaining - 1)
                if test.time_remaining == 0:
                    outcomes.append(self._complete(test))

        for outcome in outcomes:
            self._dispatch(outcome)
        return [outcome.test for outcome in outcomes]

    def resolve(self, test_id: str) -> Optional[DiagnosticTest]:
        """Complete a test now. Completed tests are returned unchanged; unknown ids give None."""
        with self._lock:
            test = self._tests.get(test_id)
            if test is None:
                return None
            if test.state == LifecycleState.COMPLETED:
                return copy.deepcopy(test)
            outcome = self._complete(test)

        self._dispatch(outcome)
        return outcome.test

    def _complete(self, test: DiagnosticTest) -> ResolutionOutcome:
        # Caller holds self._lock
        category = self.distribution.draw(self.rng)
        test.state = LifecycleState.COMPLETED
        test.time_remaining = 0
        test.completed_at = self._now()

        outcome = ResolutionOutcome(test=test)
        if category == OutcomeCategory.NEGATIVE:
            test.result = DiagnosticResult.NEGATIVE
        else:
            test.result = DiagnosticResult.POSITIVE
            test.resistance_profile = dict(RESISTANCE_PROFILES[category])
            if category == OutcomeCategory.XDR:
                outcome.status = ResistanceStatus.XDR
                outcome.alert_type = AlertType.XDR_OUTBREAK
                outcome.alert_level = 5
                outcome.description = XDR_ALERT_DESCRIPTION
            else:
                outcome.status = ResistanceStatus.MDR
                outcome.alert_type = AlertType.MDR_DETECTION
                outcome.alert_level = 4
                outcome.description = MDR_ALERT_DESCRIPTION

        logger.info(f"CBNAAT test {test.test_id} completed: {category.value}")
        outcome.test = copy.deepcopy(test)
        return outcome

    def _dispatch(self, outcome: ResolutionOutcome) -> None:
        if outcome.alert_type is None:
            return
        patient_id = outcome.test.patient_id
        if self.registry is not None:
            self.registry.escalate_resistance(patient_id, outcome.status)
        self.alerts.raise_alert(outcome.alert_type, patient_id, outcome.alert_level, outcome.description)

    def get_tests(self) -> List[DiagnosticTest]:
        with self._lock:
            return [copy.deepcopy(test) for test in self._tests.values()]

    def get_test(self, test_id: str) -> Optional[DiagnosticTest]:
        with self._lock:
            test = self._tests.get(test_id)
            return copy.deepcopy(test) if test else None

    def status_summary(self) -> Dict[str, int]:
        with self._lock:
            tests = [copy.deepcopy(test) for test in self._tests.values()]
        return {
            "total": len(tests),
            "processing": sum(1 for t in tests if t.state == LifecycleState.PROCESSING),
            "completed": sum(1 for t in tests if t.state == LifecycleState.COMPLETED),
            "positive": sum(1 for t in tests if t.result == DiagnosticResult.POSITIVE),
            "mdr_detected": sum(1 for t in tests if t.mdr_detected),
            "xdr_detected": sum(1 for t in tests if t.xdr_detected),
        }
