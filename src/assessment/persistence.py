"""Storage for completed assessments (the prediction log).

The engine never touches storage. AssessmentService hands each result to an
AssessmentStore, which stamps it with an id, a UTC timestamp and the
clinician's user id. Reads return newest first.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, Text, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .records import AssessmentResult, ClinicalInput

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A store could not write or read assessment records."""
    pass


@dataclass(frozen=True)
class StoredAssessment:
    assessment_id: str
    created_at: datetime
    user_id: str
    patient_ref: str
    result: AssessmentResult
    clinical_input: Optional[Dict[str, Any]] = None


class AssessmentStore(ABC):
    """Persistence collaborator for assessment results."""

    @abstractmethod
    def save(
        self,
        result: AssessmentResult,
        user_id: str,
        patient_ref: str,
        clinical_input: Optional[ClinicalInput] = None,
    ) -> StoredAssessment:
        """Persist one result. Raises PersistenceError on failure."""

    @abstractmethod
    def history_for(self, patient_ref: str) -> List[StoredAssessment]:
        """All results for a patient, newest first."""

    @abstractmethod
    def history_for_user(self, user_id: str) -> List[StoredAssessment]:
        """All results recorded by a clinician, newest first."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryAssessmentStore(AssessmentStore):
    """List-backed store for tests and single-session use of the app."""

    def __init__(self):
        self._records: List[StoredAssessment] = []

    def save(self, result, user_id, patient_ref, clinical_input=None):
        record = StoredAssessment(
            assessment_id=str(uuid.uuid4()),
            created_at=_now(),
            user_id=user_id,
            patient_ref=patient_ref,
            result=result,
            clinical_input=clinical_input.to_dict() if clinical_input else None,
        )
        self._records.append(record)
        return record

    def history_for(self, patient_ref):
        return [r for r in reversed(self._records) if r.patient_ref == patient_ref]

    def history_for_user(self, user_id):
        return [r for r in reversed(self._records) if r.user_id == user_id]

    def __len__(self) -> int:
        return len(self._records)


# ---------- SQL store ----------
Base = declarative_base()


class PredictionLog(Base):
    __tablename__ = "prediction_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    assessment_id = Column(String(36), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    # Who
    user_id = Column(String(64), nullable=False, index=True)
    patient_ref = Column(String(64), nullable=False, index=True)

    # Headline outputs, queryable without decoding JSON
    prediction_label = Column(String(16), nullable=False)
    risk_level = Column(String(16), nullable=False)
    probability = Column(Float, nullable=False)
    confidence_score = Column(Float, nullable=False)
    recommendation_text = Column(Text, nullable=False, default="")

    # Full result and input snapshot for audit
    result = Column(JSON, nullable=False)
    feature_input = Column(JSON, nullable=True)


class SqlAssessmentStore(AssessmentStore):
    """SQLAlchemy-backed prediction log."""

    def __init__(self, engine):
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        Base.metadata.create_all(bind=engine)

    @classmethod
    def from_url(cls, url: str) -> "SqlAssessmentStore":
        return cls(create_engine(url))

    def save(self, result, user_id, patient_ref, clinical_input=None):
        row = PredictionLog(
            assessment_id=str(uuid.uuid4()),
            created_at=_now(),
            user_id=user_id,
            patient_ref=patient_ref,
            prediction_label=result.prediction_label.value,
            risk_level=result.risk_level.value,
            probability=float(result.probability),
            confidence_score=float(result.confidence_score),
            recommendation_text=result.recommendation_text,
            result=result.to_dict(),
            feature_input=clinical_input.to_dict() if clinical_input else None,
        )
        session: Session = self._sessions()
        try:
            session.add(row)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("PREDICTION_LOG_WRITE_FAILED", extra={"patient_ref": patient_ref, "error": str(e)})
            raise PersistenceError(f"save failed: {e}") from e
        finally:
            session.close()

        logger.info(
            "PREDICTION_LOG_SAVED",
            extra={"patient_ref": patient_ref, "assessment_id": row.assessment_id},
        )
        return self._to_record(row)

    def history_for(self, patient_ref):
        return self._query(PredictionLog.patient_ref == patient_ref)

    def history_for_user(self, user_id):
        return self._query(PredictionLog.user_id == user_id)

    def _query(self, criterion) -> List[StoredAssessment]:
        session: Session = self._sessions()
        try:
            rows = (
                session.query(PredictionLog)
                .filter(criterion)
                .order_by(PredictionLog.created_at.desc(), PredictionLog.id.desc())
                .all()
            )
            return [self._to_record(r) for r in rows]
        except SQLAlchemyError as e:
            logger.error("PREDICTION_LOG_READ_FAILED", extra={"error": str(e)})
            raise PersistenceError(f"query failed: {e}") from e
        finally:
            session.close()

    @staticmethod
    def _to_record(row: PredictionLog) -> StoredAssessment:
        created_at = row.created_at
        # SQLite drops tzinfo on the way back
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return StoredAssessment(
            assessment_id=row.assessment_id,
            created_at=created_at,
            user_id=row.user_id,
            patient_ref=row.patient_ref,
            result=AssessmentResult.from_dict(row.result),
            clinical_input=row.feature_input,
        )
