import logging
import math
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Tuple

from xdr_backend.models import Patient, RiskLevel

logger = logging.getLogger(__name__)

FACTOR_MIN = 0
FACTOR_MAX = 30

# Factor weights sum to 1.0 so clamped inputs keep the score within 0-30
WEIGHTS: Dict[str, float] = {
    "age": 0.05,
    "immunity": 0.15,
    "locality": 0.08,
    "nutrition": 0.10,
    "icu_days": 0.12,
    "mdr_history": 0.20,
    "antibiotics": 0.15,
    "saps_score": 0.15,
}

# Form keys used by the ward dashboard
FACTOR_ALIASES: Dict[str, str] = {
    "icuDays": "icu_days",
    "mdrHistory": "mdr_history",
    "sapsScore": "saps_score",
}

RECOMMENDATIONS: Dict[RiskLevel, Tuple[str, ...]] = {
    RiskLevel.CRITICAL: (
        "Immediate isolation in negative pressure room",
        "Emergency CBNAAT testing within 2 hours",
        "Notify infection control team immediately",
        "Initiate comprehensive contact tracing",
    ),
    RiskLevel.HIGH: (
        "Enhanced monitoring and isolation precautions",
        "Priority CBNAAT testing within 4 hours",
        "Document all contacts in past 48 hours",
    ),
    RiskLevel.MEDIUM: (
        "Regular monitoring and assessment",
        "CBNAAT testing if symptoms develop",
        "Consider isolation if clinical suspicion",
    ),
    RiskLevel.LOW: (
        "Standard monitoring protocols",
        "Reassess if condition changes",
    ),
}

XDR_RECOMMENDATIONS: Tuple[str, ...] = (
    "XDR Risk: Specialized infectious disease consultation",
    "Extended drug susceptibility testing required",
    "Maximum containment protocols",
    "Weekly XDR progression monitoring",
)


def clamp_factor(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning(f"Non-numeric value {value!r} for factor '{name}', defaulting to 0")
        return 0
    if number < FACTOR_MIN or number > FACTOR_MAX:
        clamped = max(FACTOR_MIN, min(FACTOR_MAX, number))
        logger.warning(f"Factor '{name}'={number} out of range, clamped to {clamped}")
        return clamped
    return number


@dataclass(frozen=True)
class RiskFactors:
    """Ordinal risk factor levels for a single assessment."""
    age: int = 0
    immunity: int = 0
    locality: int = 0
    nutrition: int = 0
    icu_days: int = 0
    mdr_history: int = 0
    antibiotics: int = 0
    saps_score: int = 0

    def __post_init__(self):
        for f in fields(self):
            object.__setattr__(self, f.name, clamp_factor(f.name, getattr(self, f.name)))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RiskFactors":
        """Build factors from a form payload. Missing factors default to 0, unknown keys are ignored."""
        values = {}
        for key, value in data.items():
            name = FACTOR_ALIASES.get(key, key)
            if name not in WEIGHTS:
                logger.debug(f"Ignoring unknown risk factor '{key}'")
                continue
            values[name] = value if value is not None else 0
        return cls(**values)

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class ScoreResult:
    score: int
    risk_level: RiskLevel
    xdr_score: int
    xdr_progression: RiskLevel
    recommendations: Tuple[str, ...]

    @property
    def xdr_warning(self) -> bool:
        return self.xdr_progression in (RiskLevel.HIGH, RiskLevel.CRITICAL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "risk_level": self.risk_level.value,
            "xdr_score": self.xdr_score,
            "xdr_progression": self.xdr_progression.value,
            "xdr_warning": self.xdr_warning,
            "recommendations": list(self.recommendations),
        }


def weighted_score(factors: RiskFactors) -> int:
    """Weighted sum of factor levels, rounded half up."""
    total = sum(getattr(factors, name) * weight for name, weight in WEIGHTS.items())
    return int(math.floor(total + 0.5))


def risk_level_for(score: int) -> RiskLevel:
    return RiskLevel.from_score(score)


def xdr_score_for(factors: RiskFactors, total_score: int) -> int:
    """Accumulate XDR progression points from the high-risk factor levels."""
    xdr_score = 0
    if factors.mdr_history >= 2:
        xdr_score += 3  # previous MDR/XDR
    if factors.antibiotics >= 2:
        xdr_score += 2
    if factors.immunity >= 2:
        xdr_score += 2
    if factors.locality >= 2:
        xdr_score += 1  # endemic area
    if total_score >= 20:
        xdr_score += 2
    return xdr_score


def xdr_progression_for(xdr_score: int) -> RiskLevel:
    if xdr_score >= 6:
        return RiskLevel.CRITICAL
    if xdr_score >= 4:
        return RiskLevel.HIGH
    if xdr_score >= 2:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def recommendations_for(risk_level: RiskLevel, xdr_progression: RiskLevel) -> Tuple[str, ...]:
    advice = RECOMMENDATIONS[risk_level]
    if xdr_progression in (RiskLevel.HIGH, RiskLevel.CRITICAL):
        advice = advice + XDR_RECOMMENDATIONS
    return advice


def score(factors: RiskFactors) -> ScoreResult:
    """
    Score a factor set: weighted total, risk band, XDR progression and advice.
    NOTE: Pure and deterministic; safe to call from any thread
    """
    total = weighted_score(factors)
    level = risk_level_for(total)
    xdr_score = xdr_score_for(factors, total)
    progression = xdr_progression_for(xdr_score)
    return ScoreResult(
        score=total,
        risk_level=level,
        xdr_score=xdr_score,
        xdr_progression=progression,
        recommendations=recommendations_for(level, progression),
    )


def factors_for_patient(patient: Patient) -> RiskFactors:
    """Pre-fill the age factor from a registered patient's age."""
    if patient.age >= 65:
        age_level = 2
    elif patient.age >= 45:
        age_level = 1
    else:
        age_level = 0
    return RiskFactors(age=age_level)
