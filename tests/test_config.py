import dataclasses

import pytest

from engine import get_engine
from src.assessment.config import DEFAULT_CONFIG, EngineConfig, load_settings
from src.assessment.records import ClinicalInput, Sex, SmokingStatus


def test_defaults():
    assert DEFAULT_CONFIG.hba1c_diabetes == 6.5
    assert DEFAULT_CONFIG.glucose_diabetes == 200
    assert DEFAULT_CONFIG.confidence_base == 0.8
    assert DEFAULT_CONFIG.level_critical == 0.8


def test_config_is_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_CONFIG.w_age = 0.5


def test_with_overrides_returns_copy():
    cfg = DEFAULT_CONFIG.with_overrides(w_age=0.2)
    assert cfg.w_age == 0.2
    assert DEFAULT_CONFIG.w_age == 0.10
    assert cfg != DEFAULT_CONFIG


def test_unknown_override_rejected():
    with pytest.raises(TypeError):
        DEFAULT_CONFIG.with_overrides(not_a_threshold=1)


def test_custom_config_flows_into_flags():
    engine = get_engine(EngineConfig(glucose_diabetes=180))
    patient = ClinicalInput(
        patient_ref="p-9", age=40, sex=Sex.FEMALE, bmi=24.0,
        has_hypertension=False, has_heart_disease=False,
        smoking_status=SmokingStatus.NEVER, hba1c_percent=6.7, blood_glucose_mg_dl=190,
    )
    flags = engine.assess(patient).flags
    assert flags[0].startswith("CRITICAL: Blood glucose > 180 mg/dL")


def test_load_settings_from_environment(monkeypatch):
    monkeypatch.setenv("ASSESSMENT_DATABASE_URL", "sqlite:///assessments.db")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = load_settings()
    assert settings.database_url == "sqlite:///assessments.db"
    assert settings.log_level == "DEBUG"


def test_load_settings_defaults(monkeypatch):
    monkeypatch.delenv("ASSESSMENT_DATABASE_URL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    settings = load_settings()
    assert settings.database_url is None
    assert settings.log_level == "INFO"
