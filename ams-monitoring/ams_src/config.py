"""Configuration for the AMS Monitoring module."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Find and load .env file
_env_candidates = [
    Path(__file__).parent.parent / ".env",
    Path(__file__).parent.parent / ".env.template",
]

for env_path in _env_candidates:
    if env_path.exists():
        load_dotenv(env_path)
        break


class Config:
    """AMS Monitoring configuration."""

    # --- Database ---
    MONITORING_DB_PATH: str = os.getenv(
        "MONITORING_DB_PATH",
        str(Path.home() / ".aegis" / "ams_monitoring.db"),
    )

    # --- Dosing Advisory (local LLM) ---
    LLM_BASE_URL: str = os.getenv("LLM_BASE_URL", "http://localhost:11434")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "llama3.1:8b")
    ADVISORY_ENABLED: bool = os.getenv("ADVISORY_ENABLED", "true").lower() == "true"
    ADVISORY_TIMEOUT_SECONDS: int = int(os.getenv("ADVISORY_TIMEOUT_SECONDS", "30"))
    # Quiet period before a dosing check fires after the last input change
    ADVISORY_DEBOUNCE_SECONDS: float = float(os.getenv("ADVISORY_DEBOUNCE_SECONDS", "1.5"))

    # --- Administration Log ---
    # Most recent days shown in the per-dose log grid
    LOG_WINDOW_DAYS: int = int(os.getenv("LOG_WINDOW_DAYS", "30"))

    # --- Red Flags ---
    # Active therapy beyond this calendar day is flagged as prolonged
    PROLONGED_THERAPY_DAYS: int = int(os.getenv("PROLONGED_THERAPY_DAYS", "14"))
    # eGFR (mL/min/1.73m²) below this value raises a renal alert
    RENAL_ALERT_EGFR: float = float(os.getenv("RENAL_ALERT_EGFR", "30"))

    # --- Roster KPIs ---
    # Days remaining before planned stop that count as "nearing stop"
    NEARING_STOP_DAYS: int = int(os.getenv("NEARING_STOP_DAYS", "2"))
    # Records created within this many hours count as new admissions
    NEW_ADMISSION_HOURS: int = int(os.getenv("NEW_ADMISSION_HOURS", "24"))

    @classmethod
    def is_advisory_configured(cls) -> bool:
        """Check if the dosing advisory backend is configured."""
        return cls.ADVISORY_ENABLED and bool(cls.LLM_BASE_URL) and bool(cls.LLM_MODEL)


# Module-level convenience instance
config = Config()
