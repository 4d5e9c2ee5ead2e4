import logging
from typing import Iterable, List

from xdr_backend.models import Alert, AlertType, Patient, ResistanceStatus, RiskLevel, Ward

logger = logging.getLogger(__name__)

PROGRESSION_ALERT_LEVEL = 4
MONITORED_STATUSES = (ResistanceStatus.MDR, ResistanceStatus.PRE_XDR)


def progression_score(patient: Patient) -> int:
    """Points toward MDR -> XDR progression for a patient with known resistance."""
    score = 0
    if patient.risk_score >= 20:
        score += 2
    if patient.ward == Ward.ICU:
        score += 1
    if patient.age >= 65:
        score += 1
    if patient.resistance_status == ResistanceStatus.PRE_XDR:
        score += 3
    return score


def progression_risk(patient: Patient) -> RiskLevel:
    score = progression_score(patient)
    if score >= 4:
        return RiskLevel.HIGH
    if score >= 2:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class ProgressionMonitor:
    """
    Periodic XDR progression sweep over MDR and Pre-XDR patients.
    NOTE: Keeps no state of its own; repeat sweeps rely on AlertManager deduplication
    """

    def __init__(self, alerts):
        self.alerts = alerts

    def sweep(self, patients: Iterable[Patient]) -> List[Alert]:
        raised = []
        for patient in patients:
            if patient.resistance_status not in MONITORED_STATUSES:
                continue
            if progression_risk(patient) != RiskLevel.HIGH:
                continue
            alert = self.alerts.raise_alert(
                AlertType.PROGRESSION_RISK,
                patient.patient_id,
                PROGRESSION_ALERT_LEVEL,
                f"Patient {patient.name} showing high risk for XDR progression",
            )
            raised.append(alert)
        logger.debug(f"Progression sweep flagged {len(raised)} patients")
        return raised
