# app.py
import streamlit as st
import pandas as pd

from engine import get_engine
from src.assessment.config import configure_logging, load_settings
from src.assessment.persistence import InMemoryAssessmentStore, SqlAssessmentStore
from src.assessment.records import InvalidInput, RiskLevel, clinical_input_from_form
from src.assessment.service import AssessmentService

settings = load_settings()
configure_logging(settings.log_level)

st.set_page_config(page_title="Diabetes Risk Assessment", layout="centered")
st.title("Diabetes Risk Assessment")

st.markdown("Enter the patient's clinical values and click **Assess Risk**. Click **Show Explanation** to see how each feature contributed to the score.")


@st.cache_resource
def get_service() -> AssessmentService:
    if settings.database_url:
        store = SqlAssessmentStore.from_url(settings.database_url)
    else:
        store = InMemoryAssessmentStore()
    return AssessmentService(get_engine(), store)


service = get_service()

with st.form("assessment_form"):
    col1, col2 = st.columns(2)
    with col1:
        clinician_id = st.text_input("Clinician ID", value="")
        patient_ref = st.text_input("Patient ID", value="")
        age = st.number_input("Age (years)", min_value=0, max_value=120, value=45)
        sex = st.selectbox("Sex", ["female", "male"])
        height_cm = st.number_input("Height (cm)", min_value=50.0, max_value=250.0, value=170.0, step=0.5)
        weight_kg = st.number_input("Weight (kg)", min_value=10.0, max_value=300.0, value=75.0, step=0.5)
    with col2:
        hba1c = st.text_input("HbA1c (%)", value="5.5")
        glucose = st.text_input("Blood glucose (mg/dL)", value="100")
        smoking = st.selectbox("Smoking history", ["never", "former", "current"])
        hypertension = st.checkbox("Hypertension")
        heart_disease = st.checkbox("Heart disease")

    submitted = st.form_submit_button("Assess Risk")


def build_form():
    # BMI is derived here; the engine only sees the computed value
    bmi = round(weight_kg / (height_cm / 100.0) ** 2, 1)
    return {
        "patient_ref": patient_ref,
        "age": age,
        "sex": sex,
        "bmi": bmi,
        "has_hypertension": hypertension,
        "has_heart_disease": heart_disease,
        "smoking_status": smoking,
        "hba1c_percent": hba1c,
        "blood_glucose_mg_dl": glucose,
    }


if submitted:
    try:
        recorded = service.assess_and_record(clinical_input_from_form(build_form()), clinician_id.strip() or None)
    except InvalidInput as e:
        st.error(f"Please check the input ({e.field}): {e}")
        st.stop()

    result = recorded.result
    if recorded.warning:
        st.warning(recorded.warning)

    st.subheader("Assessment")
    c1, c2, c3 = st.columns(3)
    c1.metric("Prediction", result.prediction_label.value)
    c2.metric("Risk level", result.risk_level.value)
    c3.metric("Probability", f"{result.probability:.0%}")
    st.write(
        f"Confidence {result.confidence_score:.0%} "
        f"(interval {result.confidence_interval.lower:.2f} - {result.confidence_interval.upper:.2f})"
    )

    if result.is_critical:
        st.error("Critical findings: review this patient urgently.")
    for flag in result.flags:
        if "CRITICAL" in flag:
            st.error(flag)
        else:
            st.warning(flag)

    st.subheader("Recommendation")
    if result.risk_level.rank >= RiskLevel.HIGH.rank:
        st.error(result.recommendation_text)
    else:
        st.info(result.recommendation_text)

    with st.expander("Show Explanation"):
        st.dataframe(pd.DataFrame([
            {
                "Feature": a.feature_name,
                "Share": round(a.contribution_share, 3),
                "Risk factor": "yes" if a.is_risk_factor else "no",
                "Description": a.description,
            }
            for a in result.attributions
        ]), hide_index=True)

if patient_ref.strip():
    history = service.history_for(patient_ref.strip())
    if history:
        st.subheader("Assessment History")
        st.dataframe(pd.DataFrame([
            {
                "Date": h.created_at.strftime("%Y-%m-%d %H:%M"),
                "Prediction": h.result.prediction_label.value,
                "Risk level": h.result.risk_level.value,
                "Probability": round(h.result.probability, 3),
                "Clinician": h.user_id,
            }
            for h in history
        ]), hide_index=True)

if clinician_id.strip():
    mine = service.history_for_user(clinician_id.strip())
    if mine:
        st.subheader("My Recent Assessments")
        st.dataframe(pd.DataFrame([
            {
                "Date": h.created_at.strftime("%Y-%m-%d %H:%M"),
                "Patient": h.patient_ref,
                "Prediction": h.result.prediction_label.value,
                "Risk level": h.result.risk_level.value,
                "Critical": "yes" if h.result.is_critical else "no",
            }
            for h in mine
        ]), hide_index=True)
