# NOTE: Runtime configuration for the surveillance engine, read from the environment
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

# Outcome probabilities for a resolved CBNAAT test
DEFAULT_P_NEGATIVE = 0.60
DEFAULT_P_MDR = 0.25
DEFAULT_P_XDR = 0.15


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Engine and service settings. Defaults mirror the ward dashboard timings."""

    environment: str = "production"
    log_level: str = "INFO"

    # Test lifecycle
    test_duration: int = 90
    p_negative: float = DEFAULT_P_NEGATIVE
    p_mdr: float = DEFAULT_P_MDR
    p_xdr: float = DEFAULT_P_XDR
    random_seed: Optional[int] = None

    # Scheduler periods (seconds)
    countdown_interval: float = 60.0
    status_refresh_interval: float = 5.0
    progression_sweep_interval: float = 30.0
    scheduler_autostart: bool = True

    # Reference data
    patient_roster_csv: Optional[str] = None
    seed_demo_data: bool = True

    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:4200", "http://127.0.0.1:4200"]
    )

    def __post_init__(self):
        total = self.p_negative + self.p_mdr + self.p_xdr
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Outcome probabilities must sum to 1.0, got {total:.4f}")
        if min(self.p_negative, self.p_mdr, self.p_xdr) < 0:
            raise ValueError("Outcome probabilities must be non-negative")
        if self.test_duration < 1:
            raise ValueError(f"test_duration must be positive, got {self.test_duration}")
        for name in ("countdown_interval", "status_refresh_interval", "progression_sweep_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")


def load_settings() -> Settings:
    """Build Settings from environment variables."""
    seed = os.getenv("RANDOM_SEED")
    return Settings(
        environment=os.getenv("ENVIRONMENT", "production"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        test_duration=int(os.getenv("TEST_DURATION", "90")),
        p_negative=float(os.getenv("P_NEGATIVE", str(DEFAULT_P_NEGATIVE))),
        p_mdr=float(os.getenv("P_MDR", str(DEFAULT_P_MDR))),
        p_xdr=float(os.getenv("P_XDR", str(DEFAULT_P_XDR))),
        random_seed=int(seed) if seed not in (None, "") else None,
        countdown_interval=float(os.getenv("COUNTDOWN_INTERVAL_SECONDS", "60")),
        status_refresh_interval=float(os.getenv("STATUS_REFRESH_INTERVAL_SECONDS", "5")),
        progression_sweep_interval=float(os.getenv("PROGRESSION_SWEEP_INTERVAL_SECONDS", "30")),
        scheduler_autostart=_env_bool("SCHEDULER_AUTOSTART", True),
        patient_roster_csv=os.getenv("PATIENT_ROSTER_CSV") or None,
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        cors_origins=_env_list(
            "CORS_ORIGINS", ["http://localhost:4200", "http://127.0.0.1:4200"]
        ),
    )


def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the service process."""
    level = logging.DEBUG if settings.environment == "development" else settings.log_level
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
