"""
Surveillance engine context.

Owns every mutable aggregate (patients, tests, alerts), the scheduler that
drives them, and the operations the presentation layer is allowed to call.
NOTE: Replaces module-level registries; lifecycle is tied to start()/stop()
"""
import logging
import random
import threading
from typing import Any, Dict, List, Mapping, Optional, Union

from xdr_backend.config import Settings, load_settings
from xdr_backend.models import Alert, AlertType, DiagnosticTest, Patient, RiskLevel
from xdr_backend.scheduler import Scheduler, SystemClock
from xdr_backend.seed_data import demo_alerts, demo_hygiene, demo_patients, demo_tests, demo_zones
from xdr_backend.services import risk_scoring
from xdr_backend.services.alert_manager import AlertManager
from xdr_backend.services.cbnaat_lifecycle import DiagnosticTestLifecycle, OutcomeDistribution
from xdr_backend.services.patient_registry import PatientRegistry
from xdr_backend.services.progression_monitor import ProgressionMonitor
from xdr_backend.services.risk_scoring import RiskFactors, ScoreResult
from xdr_backend.services.statistics import build_dashboard

logger = logging.getLogger(__name__)

COUNTDOWN_TASK = "test_countdown"
STATUS_REFRESH_TASK = "test_status_refresh"
PROGRESSION_TASK = "progression_sweep"

HIGH_RISK_ALERT_LEVEL = 3


class SurveillanceContext:
    def __init__(self, settings: Optional[Settings] = None, clock=None, rng: Optional[random.Random] = None):
        self.settings = settings or Settings()
        self.clock = clock or SystemClock()
        self.alerts = AlertManager(now=self.clock.now)
        self.registry = PatientRegistry()
        self.lifecycle = DiagnosticTestLifecycle(
            self.alerts,
            self.registry,
            duration=self.settings.test_duration,
            distribution=OutcomeDistribution(
                negative=self.settings.p_negative,
                mdr=self.settings.p_mdr,
                xdr=self.settings.p_xdr,
            ),
            rng=rng or random.Random(self.settings.random_seed),
            now=self.clock.now,
        )
        self.monitor = ProgressionMonitor(self.alerts)
        self.zones = []
        self.hygiene = []

        self._dashboard: Optional[Dict[str, Any]] = None
        self._dashboard_lock = threading.Lock()

        self.scheduler = Scheduler(self.clock)
        self.scheduler.add_task(COUNTDOWN_TASK, self.settings.countdown_interval, self.lifecycle.tick)
        self.scheduler.add_task(STATUS_REFRESH_TASK, self.settings.status_refresh_interval, self.refresh_dashboard)
        self.scheduler.add_task(PROGRESSION_TASK, self.settings.progression_sweep_interval, self.run_progression_sweep)

    # ----- seeding -----

    def seed_demo_data(self) -> None:
        now = self.clock.now()
        for patient in demo_patients():
            self.registry.register(patient)
        for test in demo_tests(now, self.settings.test_duration):
            self.lifecycle.restore(test)
        for alert in demo_alerts(now):
            self.alerts.restore(alert)
        self.zones = demo_zones()
        self.hygiene = demo_hygiene()
        logger.info("Demo ward data loaded")

    # ----- risk scoring -----

    def score_factors(self, factors: Union[RiskFactors, Mapping[str, Any]]) -> ScoreResult:
        if not isinstance(factors, RiskFactors):
            factors = RiskFactors.from_mapping(factors)
        return risk_scoring.score(factors)

    def assess_patient(
        self, patient_id: str, factors: Union[RiskFactors, Mapping[str, Any]]
    ) -> Optional[ScoreResult]:
        """
        Score a registered patient and record the result. Returns None for unknown patients.
        NOTE: A factor mapping without an age level gets it from the patient record
        """
        patient = self.registry.get_patient(patient_id)
        if patient is None:
            return None
        if not isinstance(factors, RiskFactors) and "age" not in factors:
            factors = {**factors, "age": risk_scoring.factors_for_patient(patient).age}
        result = self.score_factors(factors)
        patient = self.registry.apply_score(patient_id, result)
        if patient is not None and result.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            self.alerts.raise_alert(
                AlertType.HIGH_RISK_ASSESSMENT,
                patient_id,
                HIGH_RISK_ALERT_LEVEL,
                f"Patient scored {result.score} - Enhanced monitoring required",
            )
        return result

    # ----- tests -----

    def start_test(self, patient_id: str) -> DiagnosticTest:
        return self.lifecycle.start_test(patient_id)

    def get_tests(self) -> List[DiagnosticTest]:
        return self.lifecycle.get_tests()

    def get_test(self, test_id: str) -> Optional[DiagnosticTest]:
        return self.lifecycle.get_test(test_id)

    def test_summary(self) -> Dict[str, int]:
        return self.lifecycle.status_summary()

    # ----- alerts -----

    def get_alerts(self) -> List[Alert]:
        return self.alerts.get_alerts()

    def acknowledge_alert(self, alert_id: str) -> bool:
        return self.alerts.acknowledge(alert_id)

    # ----- patients -----

    def get_patients(self) -> List[Patient]:
        return self.registry.get_patients()

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        return self.registry.get_patient(patient_id)

    # ----- periodic work -----

    def run_progression_sweep(self) -> List[Alert]:
        return self.monitor.sweep(self.registry.get_patients())

    def refresh_dashboard(self) -> Dict[str, Any]:
        dashboard = build_dashboard(
            self.registry.get_patients(),
            self.lifecycle.get_tests(),
            self.alerts.get_alerts(),
            self.zones,
            self.hygiene,
            now=self.clock.now(),
        )
        with self._dashboard_lock:
            self._dashboard = dashboard
        return dashboard

    def get_dashboard(self) -> Dict[str, Any]:
        with self._dashboard_lock:
            dashboard = self._dashboard
        return dashboard if dashboard is not None else self.refresh_dashboard()

    # ----- scheduler control -----

    def start(self, background: bool = True) -> None:
        self.scheduler.start(background=background)

    def stop(self) -> None:
        self.scheduler.stop()


def build_context(
    settings: Optional[Settings] = None,
    clock=None,
    rng: Optional[random.Random] = None,
) -> SurveillanceContext:
    """Create a context from settings, loading demo data and the patient roster when configured."""
    settings = settings or load_settings()
    context = SurveillanceContext(settings, clock=clock, rng=rng)
    if settings.seed_demo_data:
        context.seed_demo_data()
    if settings.patient_roster_csv:
        context.registry.load_csv(settings.patient_roster_csv)
    return context
