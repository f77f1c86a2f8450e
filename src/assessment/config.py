"""
Engine thresholds/weights and application settings.

EngineConfig is the whole rule-weight table. It is frozen and passed into
the engine explicitly; the defaults below are the production values.
"""
import logging
import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class EngineConfig:
    # ----- HbA1c (%) -----
    hba1c_prediabetes: float = 5.7
    hba1c_elevated: float = 6.0       # modifier: HbA1c + obesity
    hba1c_glucose_override: float = 5.9
    hba1c_diabetes: float = 6.5
    hba1c_high_risk: float = 6.9      # strict ">" comparison
    # ----- Blood glucose (mg/dL) -----
    glucose_borderline: float = 100
    glucose_moderate: float = 120
    glucose_prediabetes: float = 126
    glucose_diabetes: float = 200
    # ----- BMI (kg/m2) -----
    bmi_overweight: float = 25
    bmi_obese: float = 30
    bmi_severe_obese: float = 35
    # ----- Age (years) -----
    age_increased_risk: int = 45
    age_advanced: int = 65            # description only

    # ----- Stage A weights -----
    w_hba1c_diabetes: float = 0.35
    w_hba1c_high_risk: float = 0.30
    w_hba1c_prediabetes: float = 0.15
    w_glucose_diabetes: float = 0.25
    w_glucose_prediabetes: float = 0.20
    w_glucose_moderate: float = 0.12
    w_glucose_borderline: float = 0.10
    w_bmi_severe_obese: float = 0.20
    w_bmi_obese: float = 0.15
    w_bmi_overweight: float = 0.05
    w_age: float = 0.10
    w_hypertension: float = 0.15
    w_heart_disease: float = 0.15
    w_smoking_current: float = 0.10
    w_smoking_former: float = 0.05
    w_male: float = 0.05

    # ----- Stage B modifiers -----
    m_glucose_hba1c_critical: float = 0.20
    m_hba1c_obesity: float = 0.15
    m_age_hba1c: float = 0.10
    m_comorbidities: float = 0.10

    # ----- Stage C confidence -----
    confidence_base: float = 0.8
    confidence_min: float = 0.5
    confidence_max: float = 1.0
    hba1c_plausible_min: float = 3
    hba1c_plausible_max: float = 15
    glucose_plausible_min: float = 50
    glucose_plausible_max: float = 600
    bmi_plausible_min: float = 15
    bmi_plausible_max: float = 60
    age_plausible_min: float = 10
    age_plausible_max: float = 100
    penalty_hba1c: float = 0.2
    penalty_glucose: float = 0.2
    penalty_bmi: float = 0.1
    penalty_age: float = 0.1
    bonus_consistent_severe: float = 0.1
    interval_margin_factor: float = 0.5

    # ----- Stage E classification -----
    positive_probability: float = 0.5   # strict ">" comparison
    level_critical: float = 0.8
    level_high: float = 0.6
    level_moderate: float = 0.4

    def with_overrides(self, **changes) -> "EngineConfig":
        """Return a copy with the given fields replaced; unknown names raise TypeError."""
        return replace(self, **changes)


DEFAULT_CONFIG = EngineConfig()


@dataclass(frozen=True)
class AppSettings:
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_settings(dotenv_path: Optional[str] = None) -> AppSettings:
    """Read settings from the environment (and a .env file when present)."""
    load_dotenv(dotenv_path=dotenv_path)
    return AppSettings(
        database_url=os.getenv("ASSESSMENT_DATABASE_URL") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
