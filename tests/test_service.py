import logging

import pytest

from engine import get_engine
from src.assessment.persistence import InMemoryAssessmentStore, PersistenceError
from src.assessment.records import ClinicalInput, InvalidInput, RiskLevel, Sex, SmokingStatus
from src.assessment.service import NO_USER_WARNING, AssessmentService


class FailingStore(InMemoryAssessmentStore):
    def save(self, result, user_id, patient_ref, clinical_input=None):
        raise PersistenceError("database unavailable")

    def history_for(self, patient_ref):
        raise PersistenceError("database unavailable")

    def history_for_user(self, user_id):
        raise PersistenceError("database unavailable")


class BrokenStore(InMemoryAssessmentStore):
    def save(self, result, user_id, patient_ref, clinical_input=None):
        raise ConnectionError("connection reset")


def critical_patient(patient_ref="p-7"):
    return ClinicalInput(
        patient_ref=patient_ref, age=55, sex=Sex.MALE, bmi=32.0,
        has_hypertension=True, has_heart_disease=False,
        smoking_status=SmokingStatus.FORMER, hba1c_percent=7.2, blood_glucose_mg_dl=250,
    )


def test_result_is_saved():
    store = InMemoryAssessmentStore()
    service = AssessmentService(get_engine(), store)
    recorded = service.assess_and_record(critical_patient(), "clinician-1")
    assert recorded.saved
    assert recorded.warning is None
    assert recorded.result.risk_level is RiskLevel.CRITICAL
    assert service.history_for("p-7")[0].assessment_id == recorded.record.assessment_id
    assert service.history_for_user("clinician-1")[0].patient_ref == "p-7"


def test_persistence_failure_keeps_result(caplog):
    service = AssessmentService(get_engine(), FailingStore())
    with caplog.at_level(logging.WARNING):
        recorded = service.assess_and_record(critical_patient(), "clinician-1")
    assert not recorded.saved
    assert recorded.result.risk_level is RiskLevel.CRITICAL
    assert "database unavailable" in recorded.warning
    assert "ASSESSMENT_PERSIST_FAILED" in caplog.text


def test_unexpected_store_error_keeps_result():
    service = AssessmentService(get_engine(), BrokenStore())
    recorded = service.assess_and_record(critical_patient(), "clinician-1")
    assert not recorded.saved
    assert recorded.result.flags
    assert "connection reset" in recorded.warning


def test_missing_user_skips_save():
    store = InMemoryAssessmentStore()
    service = AssessmentService(get_engine(), store)
    recorded = service.assess_and_record(critical_patient(), None)
    assert recorded.warning == NO_USER_WARNING
    assert len(store) == 0


def test_invalid_input_saves_nothing():
    store = InMemoryAssessmentStore()
    service = AssessmentService(get_engine(), store)
    with pytest.raises(InvalidInput):
        service.assess_and_record(critical_patient(patient_ref=""), "clinician-1")
    assert len(store) == 0


def test_history_failure_returns_empty():
    service = AssessmentService(get_engine(), FailingStore())
    assert service.history_for("p-7") == []
    assert service.history_for_user("clinician-1") == []
