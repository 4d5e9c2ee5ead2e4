# NOTE: Demo ward state loaded at startup when SEED_DEMO_DATA is enabled
from datetime import datetime, timedelta
from typing import List

from xdr_backend.models import (
    FLUOROQUINOLONES,
    INJECTABLES,
    ISONIAZID,
    RIFAMPICIN,
    Alert,
    AlertType,
    DiagnosticResult,
    DiagnosticTest,
    HygieneRecord,
    LifecycleState,
    Patient,
    ResistanceStatus,
    Susceptibility,
    Ward,
    Zone,
)

R = Susceptibility.RESISTANT
S = Susceptibility.SENSITIVE


def demo_patients() -> List[Patient]:
    return [
        Patient("P001", "John Doe", 65, Ward.ICU, 22, ResistanceStatus.MDR),
        Patient("P002", "Jane Smith", 34, Ward.GENERAL, 12, ResistanceStatus.NONE),
        Patient("P003", "Robert Johnson", 78, Ward.ISOLATION, 28, ResistanceStatus.XDR),
        Patient("P004", "Maria Garcia", 52, Ward.ICU, 26, ResistanceStatus.PRE_XDR),
    ]


def demo_tests(now: datetime, duration: int = 90) -> List[DiagnosticTest]:
    return [
        DiagnosticTest(
            test_id="T001",
            patient_id="P001",
            time_remaining=45,
            duration=duration,
            started_at=now - timedelta(minutes=45),
        ),
        DiagnosticTest(
            test_id="T002",
            patient_id="P003",
            state=LifecycleState.COMPLETED,
            duration=duration,
            result=DiagnosticResult.POSITIVE,
            resistance_profile={
                RIFAMPICIN: R,
                ISONIAZID: R,
                FLUOROQUINOLONES: R,
                INJECTABLES: R,
                "pyrazinamide": R,
            },
        ),
        DiagnosticTest(
            test_id="T003",
            patient_id="P004",
            state=LifecycleState.COMPLETED,
            duration=duration,
            result=DiagnosticResult.POSITIVE,
            resistance_profile={
                RIFAMPICIN: R,
                ISONIAZID: R,
                FLUOROQUINOLONES: R,
                INJECTABLES: S,
            },
        ),
    ]


def demo_alerts(now: datetime) -> List[Alert]:
    return [
        Alert(
            alert_id="A001",
            level=5,
            alert_type=AlertType.XDR_OUTBREAK,
            patient_id="P003",
            timestamp=now - timedelta(minutes=2),
            description="Extensively Drug-Resistant TB detected - Immediate isolation required",
        ),
        Alert(
            alert_id="A002",
            level=4,
            alert_type=AlertType.PRE_XDR_HIGH_RISK,
            patient_id="P004",
            timestamp=now - timedelta(minutes=15),
            description="Pre-XDR case with high progression risk",
        ),
        Alert(
            alert_id="A003",
            level=3,
            alert_type=AlertType.HIGH_RISK_ASSESSMENT,
            patient_id="P001",
            timestamp=now - timedelta(minutes=30),
            acknowledged=True,
            description="Patient scored 22 - Enhanced monitoring required",
        ),
    ]


def demo_zones() -> List[Zone]:
    return [
        Zone("Isolation Unit", 2, "xdr", 1),
        Zone("ICU", 3, "high", 0),
        Zone("General Ward", 1, "medium", 0),
        Zone("Emergency", 0, "low", 0),
    ]


def demo_hygiene() -> List[HygieneRecord]:
    return [
        HygieneRecord("Isolation Unit", 95, "Critical"),
        HygieneRecord("ICU", 85, "High"),
        HygieneRecord("General Ward", 92, "Medium"),
        HygieneRecord("Emergency", 78, "Low"),
    ]
