# NOTE: In-memory domain models for MDR/XDR surveillance (no persistence layer)
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class RiskLevel(Enum):
    """Patient risk band derived from the 0-30 risk score."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @classmethod
    def from_score(cls, score: int) -> "RiskLevel":
        # Bands are exclusive on the lower bound: 8 is Low, 9 is Medium
        if score > 24:
            return cls.CRITICAL
        if score > 16:
            return cls.HIGH
        if score > 8:
            return cls.MEDIUM
        return cls.LOW


class ResistanceStatus(Enum):
    """Known resistance classification of a patient's pathogen."""
    NONE = "None"
    MDR = "MDR"
    PRE_XDR = "Pre-XDR"
    XDR = "XDR"

    @property
    def severity(self) -> int:
        return _RESISTANCE_SEVERITY[self]


_RESISTANCE_SEVERITY = {
    ResistanceStatus.NONE: 0,
    ResistanceStatus.MDR: 1,
    ResistanceStatus.PRE_XDR: 2,
    ResistanceStatus.XDR: 3,
}


class Ward(Enum):
    ICU = "ICU"
    GENERAL = "General"
    ISOLATION = "Isolation"
    EMERGENCY = "Emergency"


class LifecycleState(Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"


class DiagnosticResult(Enum):
    NEGATIVE = "negative"
    POSITIVE = "positive"


class Susceptibility(Enum):
    SENSITIVE = "Sensitive"
    RESISTANT = "Resistant"


class AlertType(Enum):
    """Alert categories. The dedup invariant is keyed on (type, patient)."""
    XDR_OUTBREAK = "XDR OUTBREAK ALERT"
    MDR_DETECTION = "MDR Detection Alert"
    PROGRESSION_RISK = "XDR Progression Risk"
    HIGH_RISK_ASSESSMENT = "High Risk Assessment"
    PRE_XDR_HIGH_RISK = "Pre-XDR High Risk"


# First-line and second-line drugs reported by the CBNAAT resistance panel
RIFAMPICIN = "rifampicin"
ISONIAZID = "isoniazid"
FLUOROQUINOLONES = "fluoroquinolones"
INJECTABLES = "injectables"


@dataclass
class Patient:
    """Ward patient tracked by the registry."""
    patient_id: str
    name: str
    age: int
    ward: Ward
    risk_score: int = 0
    resistance_status: ResistanceStatus = ResistanceStatus.NONE

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.from_score(self.risk_score)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_id": self.patient_id,
            "name": self.name,
            "age": self.age,
            "ward": self.ward.value,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "resistance_status": self.resistance_status.value,
        }


@dataclass
class DiagnosticTest:
    """A CBNAAT test run.

    Attributes:
        test_id: Unique test identifier (``T001``...)
        patient_id: Patient the sample was taken from; not validated at creation
        state: Processing until resolved, then Completed for good
        time_remaining: Countdown units left while processing
        duration: Initial countdown budget, used for progress reporting
        result: Negative / Positive once completed
        resistance_profile: Drug name -> susceptibility, only for positive results
    """
    test_id: str
    patient_id: str
    state: LifecycleState = LifecycleState.PROCESSING
    time_remaining: int = 0
    duration: int = 90
    result: Optional[DiagnosticResult] = None
    resistance_profile: Optional[Dict[str, Susceptibility]] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def _resistant(self, drug: str) -> bool:
        if not self.resistance_profile:
            return False
        return self.resistance_profile.get(drug) == Susceptibility.RESISTANT

    @property
    def is_completed(self) -> bool:
        return self.state == LifecycleState.COMPLETED

    @property
    def mdr_detected(self) -> bool:
        return self._resistant(RIFAMPICIN) and self._resistant(ISONIAZID)

    @property
    def xdr_detected(self) -> bool:
        return self.mdr_detected and self._resistant(FLUOROQUINOLONES) and self._resistant(INJECTABLES)

    @property
    def pre_xdr(self) -> bool:
        second_line = [self._resistant(FLUOROQUINOLONES), self._resistant(INJECTABLES)]
        return self.mdr_detected and sum(second_line) == 1

    @property
    def progress(self) -> float:
        if self.is_completed or self.duration <= 0:
            return 100.0
        elapsed = self.duration - self.time_remaining
        return round(max(0.0, min(100.0, elapsed / self.duration * 100.0)), 1)

    def to_dict(self) -> Dict[str, Any]:
        profile = None
        if self.resistance_profile is not None:
            profile = {drug: status.value for drug, status in self.resistance_profile.items()}
        return {
            "test_id": self.test_id,
            "patient_id": self.patient_id,
            "status": self.state.value,
            "time_remaining": self.time_remaining,
            "progress": self.progress,
            "result": self.result.value if self.result else None,
            "resistance_profile": profile,
            "mdr_detected": self.mdr_detected,
            "xdr_detected": self.xdr_detected,
            "pre_xdr": self.pre_xdr,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class Alert:
    """Surveillance alert. Only ``acknowledged`` ever changes after creation."""
    alert_id: str
    level: int
    alert_type: AlertType
    patient_id: str
    timestamp: datetime
    description: str
    acknowledged: bool = False

    @property
    def is_xdr(self) -> bool:
        return self.alert_type == AlertType.XDR_OUTBREAK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "level": self.level,
            "type": self.alert_type.value,
            "patient_id": self.patient_id,
            "timestamp": self.timestamp.isoformat(),
            "acknowledged": self.acknowledged,
            "description": self.description,
            "is_xdr": self.is_xdr,
        }


@dataclass(frozen=True)
class Zone:
    """Static infection-zone reference record."""
    zone: str
    infection_count: int
    risk_level: str
    xdr_cases: int = 0


@dataclass(frozen=True)
class HygieneRecord:
    department: str
    hygiene_compliance: float
    priority: str


@dataclass
class ResolutionOutcome:
    """What a resolved test asks the rest of the engine to do."""
    test: DiagnosticTest
    status: ResistanceStatus = ResistanceStatus.NONE
    alert_type: Optional[AlertType] = None
    alert_level: int = 0
    description: str = ""
