# engine.py
"""
Deterministic rule engine for diabetes risk assessment.
- Every threshold/weight lives in EngineConfig; the rule tables below are
  built from it as ordered (predicate, effect) records.
- Pipeline stages: (A) base score -> (B) modifiers -> (C) confidence ->
  (D) attribution -> (E) classification, flags and recommendation.
- Attribution is closed-form: each feature's base-score weight over the total.
"""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from src.assessment.config import DEFAULT_CONFIG, EngineConfig
from src.assessment.records import (
    AssessmentResult,
    Attribution,
    ClinicalInput,
    ConfidenceInterval,
    PredictionLabel,
    RiskLevel,
    Sex,
    SmokingStatus,
)

Predicate = Callable[[ClinicalInput], bool]


@dataclass(frozen=True)
class Rule:
    id: str
    description: str
    condition: Predicate       # function(patient) -> bool
    weight: float = 0.0        # score/confidence effect when the rule fires
    message: str = ""          # flag, explanation or recommendation text

    def applies(self, patient: ClinicalInput) -> bool:
        return bool(self.condition(patient))


def first_match(rules: Tuple[Rule, ...], patient: ClinicalInput) -> Optional[Rule]:
    return next((r for r in rules if r.applies(patient)), None)


@dataclass(frozen=True)
class FeatureRules:
    """Scoring bands and explanation text for one clinical feature.

    Bands are checked in order and only the first match scores, so a
    feature never contributes twice.
    """
    key: str                        # ClinicalInput field name
    label: str
    bands: Tuple[Rule, ...]
    descriptions: Tuple[Rule, ...]
    default_description: str
    risk_factor: Predicate

    def band_for(self, patient: ClinicalInput) -> Optional[Rule]:
        return first_match(self.bands, patient)

    def contribution(self, patient: ClinicalInput) -> float:
        band = self.band_for(patient)
        return band.weight if band else 0.0

    def describe(self, patient: ClinicalInput) -> str:
        hit = first_match(self.descriptions, patient)
        return hit.message if hit else self.default_description


# Tie-break order for attributions with equal share (ClinicalInput field order)
ATTRIBUTION_ORDER = (
    "age",
    "sex",
    "bmi",
    "has_hypertension",
    "has_heart_disease",
    "smoking_status",
    "hba1c_percent",
    "blood_glucose_mg_dl",
)


# ---------- Rule definitions ----------
def make_feature_rules(cfg: EngineConfig) -> Tuple[FeatureRules, ...]:
    """Stage A bands, in the order their weights are summed."""
    a1c = lambda p: p.hba1c_percent
    glu = lambda p: p.blood_glucose_mg_dl

    hba1c = FeatureRules(
        key="hba1c_percent",
        label="HbA1c Level",
        bands=(
            Rule("A_HBA1C_DIABETES", "HbA1c in diabetic range",
                 lambda p: a1c(p) >= cfg.hba1c_diabetes, cfg.w_hba1c_diabetes),
            # Shadowed by A_HBA1C_DIABETES while hba1c_high_risk > hba1c_diabetes.
            # Kept in this position: the override and flag rules test the same
            # ">6.9" condition on their own.
            Rule("A_HBA1C_HIGH_RISK", "HbA1c above high-risk cut-off",
                 lambda p: a1c(p) > cfg.hba1c_high_risk, cfg.w_hba1c_high_risk),
            Rule("A_HBA1C_PREDIABETES", "HbA1c in prediabetes range",
                 lambda p: a1c(p) >= cfg.hba1c_prediabetes, cfg.w_hba1c_prediabetes),
        ),
        descriptions=(
            Rule("D_HBA1C_DIABETES", "", lambda p: a1c(p) >= cfg.hba1c_diabetes,
                 message="Critical: HbA1c indicates diabetes"),
            Rule("D_HBA1C_PREDIABETES", "", lambda p: a1c(p) >= cfg.hba1c_prediabetes,
                 message="Elevated: HbA1c in prediabetes range"),
        ),
        default_description="Normal: HbA1c within healthy range",
        risk_factor=lambda p: a1c(p) >= cfg.hba1c_prediabetes,
    )

    glucose = FeatureRules(
        key="blood_glucose_mg_dl",
        label="Blood Glucose",
        bands=(
            Rule("A_GLUCOSE_DIABETES", "Glucose in diabetic range",
                 lambda p: glu(p) >= cfg.glucose_diabetes, cfg.w_glucose_diabetes),
            Rule("A_GLUCOSE_PREDIABETES", "Glucose in prediabetes range",
                 lambda p: glu(p) >= cfg.glucose_prediabetes, cfg.w_glucose_prediabetes),
            Rule("A_GLUCOSE_MODERATE", "Glucose moderately raised",
                 lambda p: glu(p) >= cfg.glucose_moderate, cfg.w_glucose_moderate),
            Rule("A_GLUCOSE_BORDERLINE", "Glucose borderline",
                 lambda p: glu(p) >= cfg.glucose_borderline, cfg.w_glucose_borderline),
        ),
        descriptions=(
            Rule("D_GLUCOSE_DIABETES", "", lambda p: glu(p) >= cfg.glucose_diabetes,
                 message="Critical: Blood glucose indicates diabetes"),
            Rule("D_GLUCOSE_PREDIABETES", "", lambda p: glu(p) >= cfg.glucose_prediabetes,
                 message="Elevated: Blood glucose in prediabetes range"),
            Rule("D_GLUCOSE_BORDERLINE", "", lambda p: glu(p) >= cfg.glucose_borderline,
                 message="Borderline: Blood glucose above normal"),
        ),
        default_description="Normal: Blood glucose within healthy range",
        risk_factor=lambda p: glu(p) >= cfg.glucose_borderline,
    )

    bmi = FeatureRules(
        key="bmi",
        label="BMI",
        bands=(
            Rule("A_BMI_SEVERE_OBESITY", "Severe obesity",
                 lambda p: p.bmi >= cfg.bmi_severe_obese, cfg.w_bmi_severe_obese),
            Rule("A_BMI_OBESITY", "Obesity",
                 lambda p: p.bmi >= cfg.bmi_obese, cfg.w_bmi_obese),
            Rule("A_BMI_OVERWEIGHT", "Overweight",
                 lambda p: p.bmi >= cfg.bmi_overweight, cfg.w_bmi_overweight),
        ),
        descriptions=(
            Rule("D_BMI_SEVERE_OBESITY", "", lambda p: p.bmi >= cfg.bmi_severe_obese,
                 message="Critical: BMI indicates severe obesity"),
            Rule("D_BMI_OBESITY", "", lambda p: p.bmi >= cfg.bmi_obese,
                 message="High: BMI indicates obesity"),
            Rule("D_BMI_OVERWEIGHT", "", lambda p: p.bmi >= cfg.bmi_overweight,
                 message="Moderate: BMI indicates overweight"),
        ),
        default_description="Normal: BMI within healthy range",
        risk_factor=lambda p: p.bmi >= cfg.bmi_overweight,
    )

    age = FeatureRules(
        key="age",
        label="Age",
        bands=(
            Rule("A_AGE", "Age at or above increased-risk cut-off",
                 lambda p: p.age >= cfg.age_increased_risk, cfg.w_age),
        ),
        descriptions=(
            Rule("D_AGE_ADVANCED", "", lambda p: p.age >= cfg.age_advanced,
                 message="High: Advanced age increases diabetes risk"),
            Rule("D_AGE_INCREASED", "", lambda p: p.age >= cfg.age_increased_risk,
                 message="Moderate: Age increases diabetes risk"),
        ),
        default_description="Low: Age is not a significant risk factor",
        risk_factor=lambda p: p.age >= cfg.age_increased_risk,
    )

    hypertension = FeatureRules(
        key="has_hypertension",
        label="Hypertension",
        bands=(
            Rule("A_HYPERTENSION", "Hypertension", lambda p: p.has_hypertension, cfg.w_hypertension),
        ),
        descriptions=(
            Rule("D_HYPERTENSION", "", lambda p: p.has_hypertension,
                 message="High: Hypertension is a diabetes risk factor"),
        ),
        default_description="Low: No hypertension",
        risk_factor=lambda p: bool(p.has_hypertension),
    )

    heart_disease = FeatureRules(
        key="has_heart_disease",
        label="Heart Disease",
        bands=(
            Rule("A_HEART_DISEASE", "Heart disease", lambda p: p.has_heart_disease, cfg.w_heart_disease),
        ),
        descriptions=(
            Rule("D_HEART_DISEASE", "", lambda p: p.has_heart_disease,
                 message="High: Heart disease is a diabetes risk factor"),
        ),
        default_description="Low: No heart disease",
        risk_factor=lambda p: bool(p.has_heart_disease),
    )

    smoking = FeatureRules(
        key="smoking_status",
        label="Smoking History",
        bands=(
            Rule("A_SMOKING_CURRENT", "Current smoker",
                 lambda p: p.smoking_status is SmokingStatus.CURRENT, cfg.w_smoking_current),
            Rule("A_SMOKING_FORMER", "Former smoker",
                 lambda p: p.smoking_status is SmokingStatus.FORMER, cfg.w_smoking_former),
        ),
        descriptions=(
            Rule("D_SMOKING_CURRENT", "", lambda p: p.smoking_status is SmokingStatus.CURRENT,
                 message="High: Current smoking increases diabetes risk"),
            Rule("D_SMOKING_FORMER", "", lambda p: p.smoking_status is SmokingStatus.FORMER,
                 message="Moderate: Former smoking may affect risk"),
        ),
        default_description="Low: No smoking history",
        risk_factor=lambda p: p.smoking_status is not SmokingStatus.NEVER,
    )

    sex = FeatureRules(
        key="sex",
        label="Sex",
        bands=(
            Rule("A_SEX_MALE", "Male sex", lambda p: p.sex is Sex.MALE, cfg.w_male),
        ),
        descriptions=(
            Rule("D_SEX_MALE", "", lambda p: p.sex is Sex.MALE,
                 message="Moderate: Male sex has slightly higher risk"),
        ),
        default_description="Low: Female sex has lower risk",
        risk_factor=lambda p: p.sex is Sex.MALE,
    )

    return (hba1c, glucose, bmi, age, hypertension, heart_disease, smoking, sex)


def make_modifier_rules(cfg: EngineConfig) -> Tuple[Rule, ...]:
    """Stage B: combination effects added on top of the base score."""
    return (
        Rule("B_GLUCOSE_HBA1C_CRITICAL", "Glucose above diabetic cut-off with diabetic HbA1c",
             lambda p: p.blood_glucose_mg_dl > cfg.glucose_diabetes and p.hba1c_percent >= cfg.hba1c_diabetes,
             cfg.m_glucose_hba1c_critical),
        Rule("B_HBA1C_OBESITY", "Elevated HbA1c with obesity",
             lambda p: p.hba1c_percent >= cfg.hba1c_elevated and p.bmi >= cfg.bmi_obese,
             cfg.m_hba1c_obesity),
        Rule("B_AGE_HBA1C", "Age with prediabetic HbA1c",
             lambda p: p.age >= cfg.age_increased_risk and p.hba1c_percent >= cfg.hba1c_prediabetes,
             cfg.m_age_hba1c),
        Rule("B_COMORBIDITIES", "Hypertension with heart disease",
             lambda p: bool(p.has_hypertension and p.has_heart_disease),
             cfg.m_comorbidities),
    )


def make_confidence_rules(cfg: EngineConfig) -> Tuple[Rule, ...]:
    """Stage C: signed adjustments to the base confidence."""
    outside = lambda v, lo, hi: v < lo or v > hi
    return (
        Rule("C_HBA1C_IMPLAUSIBLE", "HbA1c outside plausible range",
             lambda p: outside(p.hba1c_percent, cfg.hba1c_plausible_min, cfg.hba1c_plausible_max),
             -cfg.penalty_hba1c),
        Rule("C_GLUCOSE_IMPLAUSIBLE", "Glucose outside plausible range",
             lambda p: outside(p.blood_glucose_mg_dl, cfg.glucose_plausible_min, cfg.glucose_plausible_max),
             -cfg.penalty_glucose),
        Rule("C_BMI_IMPLAUSIBLE", "BMI outside plausible range",
             lambda p: outside(p.bmi, cfg.bmi_plausible_min, cfg.bmi_plausible_max),
             -cfg.penalty_bmi),
        Rule("C_AGE_IMPLAUSIBLE", "Age outside plausible range",
             lambda p: outside(p.age, cfg.age_plausible_min, cfg.age_plausible_max),
             -cfg.penalty_age),
        Rule("C_CONSISTENT_SEVERE", "HbA1c and glucose agree on a severe signal",
             lambda p: p.hba1c_percent >= cfg.hba1c_diabetes and p.blood_glucose_mg_dl >= cfg.glucose_diabetes,
             cfg.bonus_consistent_severe),
    )


def make_positive_overrides(cfg: EngineConfig) -> Tuple[Rule, ...]:
    """Stage E: combinations that force a Positive label regardless of probability."""
    return (
        Rule("E_HBA1C_HIGH_GLUCOSE_MODERATE", "HbA1c above high-risk cut-off with glucose >= 120",
             lambda p: p.hba1c_percent > cfg.hba1c_high_risk and p.blood_glucose_mg_dl >= cfg.glucose_moderate),
        Rule("E_GLUCOSE_DIABETES_HBA1C", "Diabetic glucose with HbA1c >= 5.9",
             lambda p: p.blood_glucose_mg_dl >= cfg.glucose_diabetes and p.hba1c_percent >= cfg.hba1c_glucose_override),
        Rule("E_HBA1C_DIABETES", "HbA1c diagnostic criterion",
             lambda p: p.hba1c_percent >= cfg.hba1c_diabetes),
        Rule("E_GLUCOSE_PREDIABETES", "Fasting glucose diagnostic criterion",
             lambda p: p.blood_glucose_mg_dl >= cfg.glucose_prediabetes),
    )


def make_flag_rules(cfg: EngineConfig) -> Tuple[Rule, ...]:
    """Clinical flags, most severe category first. Several may fire at once."""
    return (
        Rule("F_CRITICAL_GLUCOSE_HBA1C", "",
             lambda p: p.blood_glucose_mg_dl > cfg.glucose_diabetes and p.hba1c_percent >= cfg.hba1c_diabetes,
             message=f"CRITICAL: Blood glucose > {cfg.glucose_diabetes:g} mg/dL AND HbA1c ≥ "
                     f"{cfg.hba1c_diabetes:g}% - Immediate medical attention required"),
        Rule("F_HIGH_HBA1C_GLUCOSE", "",
             lambda p: p.hba1c_percent > cfg.hba1c_high_risk and p.blood_glucose_mg_dl >= cfg.glucose_moderate,
             message=f"HIGH RISK: HbA1c > {cfg.hba1c_high_risk:g}% with Blood glucose ≥ "
                     f"{cfg.glucose_moderate:g} mg/dL"),
        Rule("F_HIGH_GLUCOSE_HBA1C", "",
             lambda p: p.blood_glucose_mg_dl >= cfg.glucose_diabetes and p.hba1c_percent >= cfg.hba1c_glucose_override,
             message=f"HIGH RISK: Blood glucose ≥ {cfg.glucose_diabetes:g} mg/dL with HbA1c ≥ "
                     f"{cfg.hba1c_glucose_override:g}%"),
        Rule("F_HIGH_HBA1C", "",
             lambda p: p.hba1c_percent >= cfg.hba1c_diabetes,
             message=f"HIGH RISK: HbA1c ≥ {cfg.hba1c_diabetes:g}% indicates diabetes"),
        Rule("F_HIGH_GLUCOSE", "",
             lambda p: p.blood_glucose_mg_dl > cfg.glucose_diabetes,
             message=f"HIGH RISK: Blood glucose > {cfg.glucose_diabetes:g} mg/dL indicates diabetes"),
        Rule("F_HIGH_BMI", "",
             lambda p: p.bmi >= cfg.bmi_severe_obese,
             message=f"HIGH RISK: Severe obesity (BMI ≥ {cfg.bmi_severe_obese:g})"),
        Rule("F_MODERATE_PREDIABETES", "",
             lambda p: p.hba1c_percent >= cfg.hba1c_prediabetes and p.blood_glucose_mg_dl >= cfg.glucose_prediabetes,
             message="MODERATE RISK: Both HbA1c and blood glucose in prediabetes range"),
        Rule("F_MODERATE_AGE_OBESITY", "",
             lambda p: p.age >= cfg.age_increased_risk and p.bmi >= cfg.bmi_obese,
             message=f"MODERATE RISK: Age ≥ {cfg.age_increased_risk:g} and obesity combination"),
    )


URGENT_CLAUSE = "URGENT: Immediate medical consultation required."

LEVEL_CLAUSES: Dict[RiskLevel, str] = {
    RiskLevel.CRITICAL: "Immediate medical intervention required. Consult healthcare provider within 24 hours.",
    RiskLevel.HIGH: "Schedule medical consultation within 1 week.",
    RiskLevel.MODERATE: "Schedule medical consultation within 2 weeks.",
    RiskLevel.LOW: "Continue regular health monitoring.",
}

CLOSING_CLAUSE = "Focus on balanced nutrition, regular physical activity, and stress management."


def make_recommendation_clauses(cfg: EngineConfig) -> Tuple[Tuple[Rule, ...], ...]:
    """Condition-specific clauses. Each group contributes at most its first match."""
    return (
        (
            Rule("R_HBA1C_DIABETES", "", lambda p: p.hba1c_percent >= cfg.hba1c_diabetes,
                 message="Diabetes diagnosis likely - immediate lifestyle changes and medical management required."),
            Rule("R_HBA1C_PREDIABETES", "", lambda p: p.hba1c_percent >= cfg.hba1c_prediabetes,
                 message="Prediabetes detected - focus on diet, exercise, and weight management."),
        ),
        (
            Rule("R_GLUCOSE_HIGH", "", lambda p: p.blood_glucose_mg_dl > cfg.glucose_diabetes,
                 message="Elevated blood glucose requires immediate attention and monitoring."),
        ),
        (
            Rule("R_WEIGHT", "", lambda p: p.bmi >= cfg.bmi_obese,
                 message="Weight management through diet and exercise is crucial."),
        ),
        (
            Rule("R_BLOOD_PRESSURE", "", lambda p: p.has_hypertension,
                 message="Blood pressure management is essential for diabetes prevention."),
        ),
        (
            Rule("R_SMOKING", "", lambda p: p.smoking_status is SmokingStatus.CURRENT,
                 message="Smoking cessation is strongly recommended."),
        ),
    )


@dataclass(frozen=True)
class RiskEngine:
    config: EngineConfig
    features: Tuple[FeatureRules, ...]
    modifiers: Tuple[Rule, ...]
    confidence_rules: Tuple[Rule, ...]
    positive_overrides: Tuple[Rule, ...]
    flag_rules: Tuple[Rule, ...]
    recommendation_clauses: Tuple[Tuple[Rule, ...], ...]

    def assess(self, patient: ClinicalInput) -> AssessmentResult:
        """Run the full pipeline. Raises InvalidInput before computing anything."""
        patient.validate()

        probability = self.apply_modifiers(self.base_score(patient), patient)
        confidence = self.confidence_score(patient)
        attributions, shares = self.attributions(patient)
        level = self.risk_level(probability)
        flags = self.flagged_conditions(patient)

        return AssessmentResult(
            prediction_label=self.classify(probability, patient),
            risk_level=level,
            probability=probability,
            confidence_score=confidence,
            confidence_interval=self.confidence_interval(probability, confidence),
            attributions=attributions,
            flags=flags,
            recommendation_text=self.recommendation(patient, level, flags),
            feature_shares=shares,
        )

    # ----- Stage A -----
    def base_score(self, patient: ClinicalInput) -> float:
        score = 0.0
        for feature in self.features:
            score += feature.contribution(patient)
        return min(score, 1.0)

    # ----- Stage B -----
    def apply_modifiers(self, base: float, patient: ClinicalInput) -> float:
        score = base
        for rule in self.modifiers:
            if rule.applies(patient):
                score += rule.weight
        return max(0.0, min(score, 1.0))

    # ----- Stage C -----
    def confidence_score(self, patient: ClinicalInput) -> float:
        cfg = self.config
        confidence = cfg.confidence_base
        for rule in self.confidence_rules:
            if rule.applies(patient):
                confidence += rule.weight
        return max(cfg.confidence_min, min(confidence, cfg.confidence_max))

    def confidence_interval(self, probability: float, confidence: float) -> ConfidenceInterval:
        margin = (1 - confidence) * self.config.interval_margin_factor
        return ConfidenceInterval(
            lower=max(0.0, probability - margin),
            upper=min(1.0, probability + margin),
        )

    # ----- Stage D -----
    def attributions(self, patient: ClinicalInput) -> Tuple[Tuple[Attribution, ...], Dict[str, float]]:
        """Closed-form additive breakdown of the Stage A score (modifiers excluded)."""
        contributions = {f.key: f.contribution(patient) for f in self.features}
        total = 0.0
        for feature in self.features:
            total += contributions[feature.key]

        if total == 0:
            shares = {key: 0.0 for key in contributions}
        else:
            shares = {key: value / total for key, value in contributions.items()}

        by_key = {f.key: f for f in self.features}
        entries = [
            Attribution(
                feature_name=by_key[key].label,
                contribution_share=shares[key],
                is_risk_factor=bool(by_key[key].risk_factor(patient)),
                description=by_key[key].describe(patient),
            )
            for key in ATTRIBUTION_ORDER
        ]
        # sorted() is stable: equal shares keep ATTRIBUTION_ORDER
        entries = tuple(sorted(entries, key=lambda a: -a.contribution_share))
        return entries, {key: shares[key] for key in ATTRIBUTION_ORDER}

    # ----- Stage E -----
    def classify(self, probability: float, patient: ClinicalInput) -> PredictionLabel:
        if any(rule.applies(patient) for rule in self.positive_overrides):
            return PredictionLabel.POSITIVE
        if probability > self.config.positive_probability:
            return PredictionLabel.POSITIVE
        return PredictionLabel.NEGATIVE

    def risk_level(self, probability: float) -> RiskLevel:
        cfg = self.config
        if probability >= cfg.level_critical:
            return RiskLevel.CRITICAL
        if probability >= cfg.level_high:
            return RiskLevel.HIGH
        if probability >= cfg.level_moderate:
            return RiskLevel.MODERATE
        return RiskLevel.LOW

    def flagged_conditions(self, patient: ClinicalInput) -> Tuple[str, ...]:
        return tuple(rule.message for rule in self.flag_rules if rule.applies(patient))

    def recommendation(self, patient: ClinicalInput, level: RiskLevel, flags: Tuple[str, ...]) -> str:
        parts: List[str] = []
        if any("CRITICAL" in flag for flag in flags):
            parts.append(URGENT_CLAUSE)
        parts.append(LEVEL_CLAUSES[level])
        for group in self.recommendation_clauses:
            hit = first_match(group, patient)
            if hit:
                parts.append(hit.message)
        parts.append(CLOSING_CLAUSE)
        return " ".join(parts).strip()


def get_engine(config: EngineConfig = DEFAULT_CONFIG) -> RiskEngine:
    return RiskEngine(
        config=config,
        features=make_feature_rules(config),
        modifiers=make_modifier_rules(config),
        confidence_rules=make_confidence_rules(config),
        positive_overrides=make_positive_overrides(config),
        flag_rules=make_flag_rules(config),
        recommendation_clauses=make_recommendation_clauses(config),
    )


def assess(patient: ClinicalInput) -> AssessmentResult:
    """Assess with the default rule configuration."""
    return _DEFAULT_ENGINE.assess(patient)


_DEFAULT_ENGINE = get_engine()
