import random

import pytest

from xdr_backend.config import Settings
from xdr_backend.context import build_context
from xdr_backend.scheduler import ManualClock
from xdr_backend.seed_data import demo_patients
from xdr_backend.services.alert_manager import AlertManager
from xdr_backend.services.cbnaat_lifecycle import DiagnosticTestLifecycle
from xdr_backend.services.patient_registry import PatientRegistry


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def alerts(clock):
    return AlertManager(now=clock.now)


@pytest.fixture
def registry():
    return PatientRegistry(demo_patients())


@pytest.fixture
def lifecycle(alerts, registry, clock):
    return DiagnosticTestLifecycle(alerts, registry, rng=random.Random(42), now=clock.now)


@pytest.fixture
def settings():
    return Settings(random_seed=42, scheduler_autostart=False, status_refresh_interval=600)


@pytest.fixture
def context(settings, clock):
    return build_context(settings, clock=clock)
