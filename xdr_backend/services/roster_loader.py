"""
Patient roster ingestion.
Loads ward patient reference data from CSV into Patient records.
"""

import logging
from typing import List

import pandas as pd

from xdr_backend.models import Patient, ResistanceStatus, Ward

# NOTE: Roster is read-only reference data; nothing is ever written back

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["patient_id", "name", "age", "ward"]
OPTIONAL_COLUMNS = {"risk_score": 0, "resistance_status": "None"}

_WARDS = {ward.value.lower(): ward for ward in Ward}
_STATUSES = {status.value.lower(): status for status in ResistanceStatus}


def load_patients_csv(source) -> List[Patient]:
    """
    Parse a roster CSV (path or file-like) into patients.
    Rows with an unknown ward or resistance status are skipped with a warning.
    """
    # Keep literal "NA" and "null" ids and names; blanks are handled below
    df = pd.read_csv(source, dtype=str, keep_default_na=False)
    logger.info(f"Loading {len(df)} roster records")

    missing_cols = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing_cols:
        raise ValueError(f"Missing required columns: {missing_cols}")

    for col, default in OPTIONAL_COLUMNS.items():
        if col not in df.columns:
            df[col] = default

    # Clean string fields
    df["patient_id"] = df["patient_id"].astype(str).str.strip()
    df["name"] = df["name"].astype(str).str.strip()
    df["ward"] = df["ward"].astype(str).str.strip()
    df["resistance_status"] = df["resistance_status"].astype(str).str.strip().replace("", "None")

    blank = df[(df["patient_id"] == "") | (df["name"] == "")]
    if len(blank) > 0:
        logger.warning(f"Found {len(blank)} records with blank patient_id or name, skipping...")
        df = df[(df["patient_id"] != "") & (df["name"] != "")].copy()

    df["age"] = pd.to_numeric(df["age"], errors="coerce")
    invalid_age = df[df["age"].isna() | (df["age"] < 0)]
    if len(invalid_age) > 0:
        logger.warning(f"Found {len(invalid_age)} records with invalid age, skipping...")
        df = df[df["age"].notna() & (df["age"] >= 0)].copy()

    df["risk_score"] = pd.to_numeric(df["risk_score"], errors="coerce").fillna(0).clip(0, 30)

    # Remove duplicates
    df = df.drop_duplicates(subset=["patient_id"])

    patients = []
    for _, row in df.iterrows():
        ward = _WARDS.get(row["ward"].lower())
        status = _STATUSES.get(row["resistance_status"].lower())
        if ward is None:
            logger.warning(f"Skipped patient {row['patient_id']}: unknown ward '{row['ward']}'")
            continue
        if status is None:
            logger.warning(
                f"Skipped patient {row['patient_id']}: unknown resistance status '{row['resistance_status']}'"
            )
            continue
        patients.append(
            Patient(
                patient_id=row["patient_id"],
                name=row["name"],
                age=int(row["age"]),
                ward=ward,
                risk_score=int(round(row["risk_score"])),
                resistance_status=status,
            )
        )

    logger.info(f"Parsed {len(patients)} roster patients")
    return patients
