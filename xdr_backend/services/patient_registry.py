import copy
import logging
import threading
from typing import Dict, Iterable, List, Optional

from xdr_backend.models import Patient, ResistanceStatus
from xdr_backend.services.risk_scoring import ScoreResult
from xdr_backend.services.roster_loader import load_patients_csv

logger = logging.getLogger(__name__)


class PatientRegistry:
    """Owns patient records. Readers always get copies."""

    def __init__(self, patients: Iterable[Patient] = ()):
        self._patients: Dict[str, Patient] = {}
        self._lock = threading.Lock()
        for patient in patients:
            self.register(patient)

    def register(self, patient: Patient) -> Patient:
        with self._lock:
            if patient.patient_id in self._patients:
                raise ValueError(f"Patient {patient.patient_id} already registered")
            self._patients[patient.patient_id] = copy.copy(patient)
        logger.info(f"Registered patient {patient.patient_id} ({patient.ward.value})")
        return copy.copy(patient)

    def load_csv(self, source) -> int:
        """Register every patient from a roster CSV. Ids already present are skipped."""
        added = 0
        for patient in load_patients_csv(source):
            with self._lock:
                if patient.patient_id in self._patients:
                    logger.warning(f"Skipped roster patient {patient.patient_id}: already registered")
                    continue
                self._patients[patient.patient_id] = patient
            added += 1
        logger.info(f"Loaded {added} patients from roster")
        return added

    def get_patients(self) -> List[Patient]:
        with self._lock:
            return [copy.copy(p) for p in self._patients.values()]

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        with self._lock:
            patient = self._patients.get(patient_id)
            return copy.copy(patient) if patient else None

    def patient_name(self, patient_id: str) -> str:
        """Display name for joins; unregistered ids show as Unknown."""
        patient = self.get_patient(patient_id)
        return patient.name if patient else "Unknown"

    def apply_score(self, patient_id: str, result: ScoreResult) -> Optional[Patient]:
        with self._lock:
            patient = self._patients.get(patient_id)
            if patient is None:
                return None
            patient.risk_score = result.score
            logger.info(f"Patient {patient_id} scored {result.score} ({patient.risk_level.value})")
            return copy.copy(patient)

    def escalate_resistance(self, patient_id: str, status: ResistanceStatus) -> Optional[Patient]:
        """Record a detected resistance class. A patient is never moved to a less severe status."""
        with self._lock:
            patient = self._patients.get(patient_id)
            if patient is None:
                logger.warning(f"Resistance result for unregistered patient {patient_id}")
                return None
            if status.severity > patient.resistance_status.severity:
                logger.info(
                    f"Patient {patient_id} resistance {patient.resistance_status.value} -> {status.value}"
                )
                patient.resistance_status = status
            return copy.copy(patient)

    def __len__(self) -> int:
        with self._lock:
            return len(self._patients)
