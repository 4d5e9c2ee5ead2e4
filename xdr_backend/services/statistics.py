from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

import pandas as pd

from xdr_backend.models import Alert, DiagnosticTest, HygieneRecord, Patient, RiskLevel, Zone

HYGIENE_TARGET = 90.0


def _risk_distribution(patients_df: pd.DataFrame) -> Dict[str, int]:
    counts = {level.value: 0 for level in RiskLevel}
    if not patients_df.empty:
        for level, count in patients_df["risk_level"].value_counts().items():
            counts[level] = int(count)
    return counts


def build_dashboard(
    patients: Iterable[Patient],
    tests: Iterable[DiagnosticTest],
    alerts: Iterable[Alert],
    zones: Iterable[Zone] = (),
    hygiene: Iterable[HygieneRecord] = (),
    hygiene_target: float = HYGIENE_TARGET,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Aggregate ward metrics for the dashboard.
    NOTE: Snapshot of engine state; refreshed on the test-status period
    """
    patients_df = pd.DataFrame(
        [p.to_dict() for p in patients],
        columns=["patient_id", "name", "age", "ward", "risk_score", "risk_level", "resistance_status"],
    )
    tests_df = pd.DataFrame(
        [t.to_dict() for t in tests],
        columns=["test_id", "patient_id", "status", "result", "mdr_detected", "xdr_detected"],
    )
    alerts_df = pd.DataFrame(
        [a.to_dict() for a in alerts],
        columns=["alert_id", "type", "patient_id", "acknowledged", "is_xdr"],
    )
    zones_df = pd.DataFrame(
        [vars(z) for z in zones], columns=["zone", "infection_count", "risk_level", "xdr_cases"]
    )
    hygiene_df = pd.DataFrame(
        [vars(h) for h in hygiene], columns=["department", "hygiene_compliance", "priority"]
    )

    status = patients_df["resistance_status"]
    active_alerts = alerts_df[~alerts_df["acknowledged"].astype(bool)]

    below_target = hygiene_df[hygiene_df["hygiene_compliance"] < hygiene_target]
    mean_compliance = hygiene_df["hygiene_compliance"].mean() if not hygiene_df.empty else None

    return {
        "generated_at": (now or datetime.now(timezone.utc)).isoformat(),
        "total_patients": int(len(patients_df)),
        "xdr_cases": int((status == "XDR").sum()),
        "mdr_cases": int(status.isin(["MDR", "Pre-XDR"]).sum()),
        "high_risk_cases": int(patients_df["risk_level"].isin(["High", "Critical"]).sum()),
        "risk_distribution": _risk_distribution(patients_df),
        "patients_by_ward": {k: int(v) for k, v in patients_df["ward"].value_counts().items()},
        "active_tests": int((tests_df["status"] == "processing").sum()),
        "completed_tests": int((tests_df["status"] == "completed").sum()),
        "positive_tests": int((tests_df["result"] == "positive").sum()),
        "mdr_detected_tests": int(tests_df["mdr_detected"].astype(bool).sum()),
        "xdr_detected_tests": int(tests_df["xdr_detected"].astype(bool).sum()),
        "active_alerts": int(len(active_alerts)),
        "critical_outbreak": bool(active_alerts["is_xdr"].astype(bool).any()),
        "zones": {
            "total_infections": int(zones_df["infection_count"].sum()),
            "xdr_cases": int(zones_df["xdr_cases"].sum()),
            "by_zone": zones_df.set_index("zone")["infection_count"].astype(int).to_dict(),
        },
        "hygiene": {
            "mean_compliance": round(float(mean_compliance), 1) if mean_compliance is not None else None,
            "target": hygiene_target,
            "below_target": below_target["department"].tolist(),
        },
    }
