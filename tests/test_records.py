import dataclasses
import math

import pytest

from src.assessment.records import (
    InvalidInput,
    RiskLevel,
    Sex,
    SmokingStatus,
    clinical_input_from_form,
    safe_num,
    truthy_flag,
)


def form(**overrides):
    values = {
        "patient_ref": " p-042 ",
        "age": "52",
        "sex": "male",
        "bmi": "31.4",
        "has_hypertension": "yes",
        "has_heart_disease": 0,
        "smoking_status": "Former",
        "hba1c_percent": "6.1",
        "blood_glucose_mg_dl": "140",
    }
    values.update(overrides)
    return values


def test_form_values_are_coerced():
    patient = clinical_input_from_form(form())
    assert patient.patient_ref == "p-042"
    assert patient.age == 52
    assert patient.sex is Sex.MALE
    assert patient.bmi == 31.4
    assert patient.has_hypertension is True
    assert patient.has_heart_disease is False
    assert patient.smoking_status is SmokingStatus.FORMER
    assert patient.hba1c_percent == 6.1
    assert patient.blood_glucose_mg_dl == 140
    patient.validate()


def test_sex_numeric_encoding():
    assert clinical_input_from_form(form(sex=1)).sex is Sex.MALE
    assert clinical_input_from_form(form(sex=0)).sex is Sex.FEMALE
    assert clinical_input_from_form(form(sex="F")).sex is Sex.FEMALE


def test_unknown_categories_raise():
    with pytest.raises(InvalidInput) as exc:
        clinical_input_from_form(form(sex="unknown"))
    assert exc.value.field == "sex"
    with pytest.raises(InvalidInput) as exc:
        clinical_input_from_form(form(smoking_status="sometimes"))
    assert exc.value.field == "smoking_status"


def test_blank_number_fails_validation():
    patient = clinical_input_from_form(form(hba1c_percent=""))
    assert math.isnan(patient.hba1c_percent)
    with pytest.raises(InvalidInput) as exc:
        patient.validate()
    assert exc.value.field == "hba1c_percent"


def test_missing_patient_ref_fails_validation():
    patient = clinical_input_from_form(form(patient_ref=None))
    with pytest.raises(InvalidInput) as exc:
        patient.validate()
    assert exc.value.field == "patient_ref"


def test_boolean_is_not_a_number():
    patient = clinical_input_from_form(form())
    bad = dataclasses.replace(patient, age=True)
    with pytest.raises(InvalidInput):
        bad.validate()


def test_safe_num():
    assert safe_num(None) is None
    assert safe_num("") is None
    assert safe_num("  ") is None
    assert safe_num("abc") is None
    assert safe_num(" 7.5 ") == 7.5
    assert safe_num(3) == 3.0


def test_truthy_flag():
    assert truthy_flag("yes")
    assert truthy_flag(1)
    assert truthy_flag(True)
    assert not truthy_flag("no")
    assert not truthy_flag(None)


def test_risk_level_rank():
    ranked = sorted(RiskLevel, key=lambda level: level.rank)
    assert ranked == [RiskLevel.LOW, RiskLevel.MODERATE, RiskLevel.HIGH, RiskLevel.CRITICAL]


def test_input_to_dict():
    data = clinical_input_from_form(form()).to_dict()
    assert data["sex"] == "male"
    assert data["smoking_status"] == "former"
    assert data["patient_ref"] == "p-042"


def test_huge_integer_from_form_is_kept():
    patient = clinical_input_from_form(form(blood_glucose_mg_dl=10**400))
    assert patient.blood_glucose_mg_dl == 10**400
    patient.validate()
