"""Assess-then-record orchestration.

A computed result is always returned to the caller. Writing it to the
store is best effort: a missing clinician id or a store failure becomes a
warning on the returned RecordedAssessment, never an exception.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from .persistence import AssessmentStore, PersistenceError, StoredAssessment
from .records import AssessmentResult, ClinicalInput

logger = logging.getLogger(__name__)

NO_USER_WARNING = "No authenticated user found; assessment was not saved"


@dataclass(frozen=True)
class RecordedAssessment:
    result: AssessmentResult
    record: Optional[StoredAssessment] = None
    warning: Optional[str] = None

    @property
    def saved(self) -> bool:
        return self.record is not None


class AssessmentService:
    def __init__(self, engine, store: AssessmentStore):
        """
        Args:
            engine: anything with assess(ClinicalInput) -> AssessmentResult
            store: persistence collaborator for completed results
        """
        self.engine = engine
        self.store = store

    def assess_and_record(self, clinical_input: ClinicalInput, user_id: Optional[str]) -> RecordedAssessment:
        # InvalidInput propagates; nothing is saved for a rejected input
        result = self.engine.assess(clinical_input)
        logger.info(
            "ASSESSMENT_COMPLETED",
            extra={
                "patient_ref": clinical_input.patient_ref,
                "risk_level": result.risk_level.value,
                "prediction_label": result.prediction_label.value,
            },
        )

        if not user_id:
            logger.warning("ASSESSMENT_NOT_SAVED", extra={"patient_ref": clinical_input.patient_ref})
            return RecordedAssessment(result=result, warning=NO_USER_WARNING)

        try:
            record = self.store.save(result, user_id, clinical_input.patient_ref, clinical_input)
        except Exception as e:  # any store failure is reported, the result stands
            logger.warning(
                "ASSESSMENT_PERSIST_FAILED",
                extra={
                    "patient_ref": clinical_input.patient_ref,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            return RecordedAssessment(result=result, warning=f"Assessment was not saved: {e}")

        return RecordedAssessment(result=result, record=record)

    def history_for(self, patient_ref: str) -> List[StoredAssessment]:
        try:
            return self.store.history_for(patient_ref)
        except PersistenceError as e:
            logger.error("HISTORY_FETCH_FAILED", extra={"patient_ref": patient_ref, "error": str(e)})
            return []

    def history_for_user(self, user_id: str) -> List[StoredAssessment]:
        try:
            return self.store.history_for_user(user_id)
        except PersistenceError as e:
            logger.error("HISTORY_FETCH_FAILED", extra={"user_id": user_id, "error": str(e)})
            return []
