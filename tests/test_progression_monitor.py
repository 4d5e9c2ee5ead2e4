"""Tests for the XDR progression sweep."""

from xdr_backend.models import AlertType, Patient, ResistanceStatus, RiskLevel, Ward
from xdr_backend.services.progression_monitor import ProgressionMonitor, progression_risk, progression_score


def progression_alerts(alerts, patient_id=None):
    return [
        a for a in alerts.get_alerts()
        if a.alert_type == AlertType.PROGRESSION_RISK and (patient_id is None or a.patient_id == patient_id)
    ]


class TestProgressionScore:
    def test_demo_patients(self, registry):
        assert progression_score(registry.get_patient("P001")) == 4  # risk 22, ICU, age 65
        assert progression_score(registry.get_patient("P004")) == 6  # risk 26, ICU, Pre-XDR
        assert progression_risk(registry.get_patient("P001")) == RiskLevel.HIGH

    def test_medium_and_low(self):
        medium = Patient("P010", "A Patient", 30, Ward.GENERAL, 20, ResistanceStatus.MDR)
        low = Patient("P011", "B Patient", 30, Ward.GENERAL, 10, ResistanceStatus.MDR)
        assert progression_risk(medium) == RiskLevel.MEDIUM
        assert progression_risk(low) == RiskLevel.LOW


class TestSweep:
    """Test suite for sweep behaviour and deduplication."""

    def test_sweep_raises_for_high_risk_patients(self, alerts, registry):
        monitor = ProgressionMonitor(alerts)
        raised = monitor.sweep(registry.get_patients())
        assert sorted(a.patient_id for a in raised) == ["P001", "P004"]
        assert all(a.level == 4 for a in raised)
        assert "Maria Garcia" in progression_alerts(alerts, "P004")[0].description

    def test_repeated_sweeps_do_not_duplicate(self, alerts, registry):
        monitor = ProgressionMonitor(alerts)
        for _ in range(5):
            monitor.sweep(registry.get_patients())
        assert len(progression_alerts(alerts)) == 2

    def test_new_alert_after_acknowledgement(self, alerts, registry):
        monitor = ProgressionMonitor(alerts)
        monitor.sweep(registry.get_patients())
        [first] = progression_alerts(alerts, "P001")
        alerts.acknowledge(first.alert_id)

        monitor.sweep(registry.get_patients())
        p001 = progression_alerts(alerts, "P001")
        assert len(p001) == 2
        assert p001[0].alert_id != first.alert_id
        assert p001[0].acknowledged is False

    def test_medium_risk_patient_is_not_alerted(self, alerts):
        monitor = ProgressionMonitor(alerts)
        patient = Patient("P010", "A Patient", 30, Ward.GENERAL, 20, ResistanceStatus.MDR)
        assert monitor.sweep([patient]) == []

    def test_xdr_patient_with_open_alert(self, alerts, registry):
        """P003 (XDR, Isolation, 78, score 28) is never re-raised while an alert is open."""
        monitor = ProgressionMonitor(alerts)
        existing = alerts.raise_alert(AlertType.PROGRESSION_RISK, "P003", 4, "Manual escalation")

        monitor.sweep(registry.get_patients())
        assert [a.alert_id for a in progression_alerts(alerts, "P003")] == [existing.alert_id]

        alerts.acknowledge(existing.alert_id)
        monitor.sweep(registry.get_patients())
        p003 = progression_alerts(alerts, "P003")
        # Already XDR, so no longer a progression candidate
        assert len(p003) == 1
        assert p003[0].acknowledged is True
