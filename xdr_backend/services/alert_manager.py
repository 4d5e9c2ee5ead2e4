import copy
import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from xdr_backend.models import Alert, AlertType

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertManager:
    """
    Owns the alert history (most recent first) and enforces deduplication.
    NOTE: At most one unacknowledged alert per (type, patient) at any time
    """

    def __init__(self, now: Callable[[], datetime] = _utcnow, id_prefix: str = "A"):
        self._now = now
        self._id_prefix = id_prefix
        self._ids = itertools.count(1)
        self._alerts: List[Alert] = []
        self._by_id: Dict[str, Alert] = {}
        self._open: Dict[Tuple[AlertType, str], Alert] = {}
        self._lock = threading.Lock()

    def _next_id(self) -> str:
        while True:
            alert_id = f"{self._id_prefix}{next(self._ids):03d}"
            if alert_id not in self._by_id:
                return alert_id

    def raise_alert(
        self,
        alert_type: AlertType,
        patient_id: str,
        level: int,
        description: str,
    ) -> Alert:
        """
        Create an alert unless an unacknowledged one of the same type already exists for the patient.
        Returns the new alert, or the existing open one.
        """
        if not 1 <= level <= 5:
            raise ValueError(f"Alert level must be between 1 and 5, got {level}")

        key = (alert_type, patient_id)
        with self._lock:
            existing = self._open.get(key)
            if existing is not None:
                logger.debug(f"Suppressed duplicate {alert_type.value} for {patient_id} ({existing.alert_id})")
                return copy.copy(existing)

            alert = Alert(
                alert_id=self._next_id(),
                level=level,
                alert_type=alert_type,
                patient_id=patient_id,
                timestamp=self._now(),
                description=description,
            )
            self._alerts.insert(0, alert)
            self._by_id[alert.alert_id] = alert
            self._open[key] = alert

        logger.info(f"Alert {alert.alert_id} raised: {alert_type.value} (level {level}) for patient {patient_id}")
        return copy.copy(alert)

    def restore(self, alert: Alert) -> Alert:
        """Insert a pre-existing alert record (seed data), respecting the dedup invariant."""
        key = (alert.alert_type, alert.patient_id)
        with self._lock:
            if alert.alert_id in self._by_id:
                raise ValueError(f"Duplicate alert id {alert.alert_id}")
            if not alert.acknowledged and key in self._open:
                return copy.copy(self._open[key])
            self._alerts.append(alert)
            self._alerts.sort(key=lambda a: a.timestamp, reverse=True)
            self._by_id[alert.alert_id] = alert
            if not alert.acknowledged:
                self._open[key] = alert
        return copy.copy(alert)

    def acknowledge(self, alert_id: str) -> bool:
        """Mark an alert acknowledged. Unknown ids and repeat acknowledgements are no-ops."""
        with self._lock:
            alert = self._by_id.get(alert_id)
            if alert is None:
                logger.warning(f"Acknowledge ignored, unknown alert {alert_id}")
                return False
            if alert.acknowledged:
                return True
            alert.acknowledged = True
            self._open.pop((alert.alert_type, alert.patient_id), None)
        logger.info(f"Alert {alert_id} acknowledged")
        return True

    def get_alerts(self) -> List[Alert]:
        with self._lock:
            return [copy.copy(alert) for alert in self._alerts]

    def get_alert(self, alert_id: str) -> Optional[Alert]:
        with self._lock:
            alert = self._by_id.get(alert_id)
            return copy.copy(alert) if alert else None

    def active_alerts(self) -> List[Alert]:
        with self._lock:
            return [copy.copy(alert) for alert in self._alerts if not alert.acknowledged]

    def active_count(self) -> int:
        with self._lock:
            return len(self._open)

    def has_critical_outbreak(self) -> bool:
        with self._lock:
            return any(alert_type == AlertType.XDR_OUTBREAK for alert_type, _ in self._open)
