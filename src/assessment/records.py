"""
Clinical input and assessment result records for the diabetes risk engine.

Inputs are built once per assessment and discarded; results are immutable
once produced and are what the persistence layer stores as the audit record.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class Sex(Enum):
    MALE = "male"
    FEMALE = "female"


class SmokingStatus(Enum):
    NEVER = "never"
    FORMER = "former"
    CURRENT = "current"


class PredictionLabel(Enum):
    POSITIVE = "Positive"
    NEGATIVE = "Negative"


class RiskLevel(Enum):
    """Risk bucket derived from the post-modifier probability."""
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MODERATE: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


class InvalidInput(ValueError):
    """Raised when an assessment cannot be computed from the given input."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


NUMERIC_FIELDS = ("age", "bmi", "hba1c_percent", "blood_glucose_mg_dl")


@dataclass(frozen=True)
class ClinicalInput:
    patient_ref: str
    age: int
    sex: Sex
    bmi: float
    has_hypertension: bool
    has_heart_disease: bool
    smoking_status: SmokingStatus
    hba1c_percent: float
    blood_glucose_mg_dl: int

    def validate(self) -> None:
        """Raise InvalidInput for missing identity, bad categories or non-finite numbers.

        Out-of-range but finite values are accepted; the engine reports them
        through a lower confidence score instead.
        """
        if not isinstance(self.patient_ref, str) or self.patient_ref.strip() == "":
            raise InvalidInput("patient_ref", "patient reference is required")
        for name in NUMERIC_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidInput(name, f"expected a number, got {value!r}")
            # ints of any size are finite; only floats can be NaN or infinite
            if isinstance(value, float) and not math.isfinite(value):
                raise InvalidInput(name, f"value must be finite, got {value!r}")
        if not isinstance(self.sex, Sex):
            raise InvalidInput("sex", f"unknown sex {self.sex!r}")
        if not isinstance(self.smoking_status, SmokingStatus):
            raise InvalidInput("smoking_status", f"unknown smoking status {self.smoking_status!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patient_ref": self.patient_ref,
            "age": self.age,
            "sex": self.sex.value,
            "bmi": self.bmi,
            "has_hypertension": self.has_hypertension,
            "has_heart_disease": self.has_heart_disease,
            "smoking_status": self.smoking_status.value,
            "hba1c_percent": self.hba1c_percent,
            "blood_glucose_mg_dl": self.blood_glucose_mg_dl,
        }


@dataclass(frozen=True)
class Attribution:
    feature_name: str
    contribution_share: float
    is_risk_factor: bool
    description: str


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float


@dataclass(frozen=True)
class AssessmentResult:
    prediction_label: PredictionLabel
    risk_level: RiskLevel
    probability: float
    confidence_score: float
    confidence_interval: ConfidenceInterval
    attributions: Tuple[Attribution, ...]
    flags: Tuple[str, ...]
    recommendation_text: str
    # share per input field name, all eight features present
    feature_shares: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        # read-only views so a stored result cannot be edited through a reference
        object.__setattr__(self, "attributions", tuple(self.attributions))
        object.__setattr__(self, "flags", tuple(self.flags))
        object.__setattr__(self, "feature_shares", MappingProxyType(dict(self.feature_shares)))

    @property
    def is_critical(self) -> bool:
        return any("CRITICAL" in f for f in self.flags)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prediction_label": self.prediction_label.value,
            "risk_level": self.risk_level.value,
            "probability": self.probability,
            "confidence_score": self.confidence_score,
            "confidence_interval": {
                "lower": self.confidence_interval.lower,
                "upper": self.confidence_interval.upper,
            },
            "attributions": [
                {
                    "feature_name": a.feature_name,
                    "contribution_share": a.contribution_share,
                    "is_risk_factor": a.is_risk_factor,
                    "description": a.description,
                }
                for a in self.attributions
            ],
            "flags": list(self.flags),
            "recommendation_text": self.recommendation_text,
            "feature_shares": dict(self.feature_shares),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AssessmentResult":
        ci = data["confidence_interval"]
        return cls(
            prediction_label=PredictionLabel(data["prediction_label"]),
            risk_level=RiskLevel(data["risk_level"]),
            probability=float(data["probability"]),
            confidence_score=float(data["confidence_score"]),
            confidence_interval=ConfidenceInterval(float(ci["lower"]), float(ci["upper"])),
            attributions=tuple(
                Attribution(
                    feature_name=a["feature_name"],
                    contribution_share=float(a["contribution_share"]),
                    is_risk_factor=bool(a["is_risk_factor"]),
                    description=a["description"],
                )
                for a in data.get("attributions", [])
            ),
            flags=tuple(data.get("flags", ())),
            recommendation_text=data.get("recommendation_text", ""),
            feature_shares=dict(data.get("feature_shares", {})),
        )


# ---------- Form coercion ----------

def safe_num(x: Any) -> Optional[float]:
    """Convert input to a number if possible; return None for empty/invalid."""
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, int):
        # left as int: very large values do not fit in a float
        return x
    if isinstance(x, float):
        return float(x)
    s = str(x).strip()
    if s == "":
        return None
    try:
        return float(s)
    except ValueError:
        return None


def truthy_flag(x: Any) -> bool:
    """Interpret the truthy values a form or upstream export may send."""
    return x in (1, True, "1", "yes", "Yes", "YES", "Y", "y", "true", "True")


_SEX_ALIASES = {
    "male": Sex.MALE, "m": Sex.MALE, "1": Sex.MALE,
    "female": Sex.FEMALE, "f": Sex.FEMALE, "0": Sex.FEMALE,
}


def _coerce_sex(value: Any) -> Sex:
    if isinstance(value, Sex):
        return value
    if isinstance(value, bool):
        value = int(value)
    key = str(value).strip().lower()
    if key not in _SEX_ALIASES:
        raise InvalidInput("sex", f"unknown sex {value!r}")
    return _SEX_ALIASES[key]


def _coerce_smoking(value: Any) -> SmokingStatus:
    if isinstance(value, SmokingStatus):
        return value
    try:
        return SmokingStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidInput("smoking_status", f"unknown smoking status {value!r}") from None


def _whole(value):
    if isinstance(value, int) or not math.isfinite(value):
        return value
    return int(value)


def _number(form: Mapping[str, Any], key: str) -> float:
    value = safe_num(form.get(key))
    # blank or unparsable numbers become NaN so validate() names the field
    return math.nan if value is None else value


def clinical_input_from_form(form: Mapping[str, Any]) -> ClinicalInput:
    """Build a ClinicalInput from loosely typed form values.

    Sex accepts "male"/"female", "M"/"F" or the 1/0 encoding (1 = male).
    Integer fields are truncated only when the parsed value is finite.
    """
    age = _number(form, "age")
    glucose = _number(form, "blood_glucose_mg_dl")
    return ClinicalInput(
        patient_ref=str(form.get("patient_ref") or "").strip(),
        age=_whole(age),
        sex=_coerce_sex(form.get("sex")),
        bmi=_number(form, "bmi"),
        has_hypertension=truthy_flag(form.get("has_hypertension")),
        has_heart_disease=truthy_flag(form.get("has_heart_disease")),
        smoking_status=_coerce_smoking(form.get("smoking_status")),
        hba1c_percent=_number(form, "hba1c_percent"),
        blood_glucose_mg_dl=_whole(glucose),
    )
