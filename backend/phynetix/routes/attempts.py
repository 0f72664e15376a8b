"""
Attempts API routes - starting a test and reading back an attempt.

- POST /api/start-test creates the single attempt a user gets per test
- GET /api/attempts/{attempt_id} returns the caller's own stored attempt
"""

import uuid
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from phynetix.auth import get_current_user_id
from phynetix.database import get_db
from phynetix.exceptions import InvalidRequest, NotFound, SubmissionError
from phynetix.logging_config import get_logger, log_with_context
from phynetix.models.attempt import TestAttempt
from phynetix.models.test import Test

router = APIRouter()
logger = get_logger("http")
db_logger = get_logger("db")


class StartTestRequest(BaseModel):
    test_id: Optional[str] = None

    @field_validator("test_id", mode="before")
    def coerce_test_id(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class StartTestResponse(BaseModel):
    attempt_id: str
    test_name: str
    duration_minutes: int


def serialize_attempt(attempt: TestAttempt) -> dict:
    """Serialize a TestAttempt ORM object for API responses."""
    return {
        "id": str(attempt.id),
        "test_id": str(attempt.test_id),
        "user_id": str(attempt.user_id),
        "answers": attempt.answers_dict,
        "score": attempt.score,
        "total_marks": attempt.total_marks,
        "time_taken_seconds": attempt.time_taken_seconds,
        "started_at": attempt.started_at.isoformat() if attempt.started_at else None,
        "completed_at": attempt.completed_at.isoformat() if attempt.completed_at else None,
        "rank": attempt.rank,
        "percentile": attempt.percentile,
    }


@router.post("/api/start-test", response_model=StartTestResponse)
def start_test(request: StartTestRequest,
               user_id: str = Depends(get_current_user_id),
               db: Session = Depends(get_db)):
    """Create the caller's attempt for a published test (one per user and test)."""
    if not request.test_id:
        raise InvalidRequest("test_id is required")

    context = {"test_id": request.test_id, "user_id": user_id}
    log_with_context(logger, "INFO",
        "Starting test {} for user {}".format(request.test_id, user_id), context=context)

    existing = db.query(TestAttempt.id).filter(
        TestAttempt.test_id == request.test_id,
        TestAttempt.user_id == user_id,
    ).first()
    if existing:
        log_with_context(logger, "WARNING", "User already attempted this test", context=context)
        raise SubmissionError(
            "You have already attempted this test. Each test can only be attempted once.")

    test = db.query(Test).filter(
        Test.id == request.test_id,
        Test.is_published.is_(True),
    ).first()
    if test is None:
        raise NotFound("Test not found or not published")

    attempt = TestAttempt(
        id=str(uuid.uuid4()),
        test_id=test.id,
        user_id=user_id,
        answers="{}",
        started_at=datetime.now(timezone.utc),
    )
    try:
        db.add(attempt)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        log_with_context(db_logger, "ERROR", "Failed to create attempt",
            context=context, exc_info=True)
        raise SubmissionError("Failed to start test")

    log_with_context(logger, "INFO",
        "Created attempt {} for test {}".format(attempt.id, test.id),
        context={**context, "attempt_id": attempt.id})

    return StartTestResponse(
        attempt_id=attempt.id,
        test_name=test.name,
        duration_minutes=test.duration_minutes,
    )


@router.get("/api/attempts/{attempt_id}")
def get_attempt(attempt_id: str,
                user_id: str = Depends(get_current_user_id),
                db: Session = Depends(get_db)):
    """Return one of the caller's attempts."""
    attempt = db.query(TestAttempt).filter(
        TestAttempt.id == attempt_id,
        TestAttempt.user_id == user_id,
    ).first()
    if attempt is None:
        raise NotFound()
    return serialize_attempt(attempt)
