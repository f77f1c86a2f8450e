from pathlib import Path

import pytest
from streamlit.testing.v1 import AppTest

APP = str(Path(__file__).resolve().parent.parent / "app.py")


@pytest.fixture
def app(monkeypatch):
    monkeypatch.delenv("ASSESSMENT_DATABASE_URL", raising=False)
    at = AppTest.from_file(APP, default_timeout=30)
    at.run()
    return at


def submit(at, clinician_id, patient_ref, hba1c="5.5", glucose="100"):
    at.text_input[0].input(clinician_id)
    at.text_input[1].input(patient_ref)
    at.text_input[2].input(hba1c)
    at.text_input[3].input(glucose)
    at.button[0].click()
    at.run()
    return at


def test_critical_result_shows_banner(app):
    at = submit(app, "clinician-crit", "p-crit", hba1c="7.2", glucose="250")
    errors = [e.value for e in at.error]
    assert "Critical findings: review this patient urgently." in errors
    assert any(e.startswith("CRITICAL:") for e in errors)


def test_low_risk_recommendation_is_informational(app):
    at = submit(app, "clinician-low", "p-low")
    assert not [e.value for e in at.error]
    assert len(at.info) == 1


def test_clinician_sees_own_recent_assessments(app):
    at = submit(app, "clinician-mine", "p-mine")
    headers = [s.value for s in at.subheader]
    assert "My Recent Assessments" in headers
    assert "Assessment History" in headers
