"""
Submission API route - POST /api/submit-test.

Grades the caller's in-progress attempt and returns the full result for
the review screen. Failures come back as ``{"error": message}`` through
the SubmissionError handler registered in main.py.
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from phynetix.auth import get_current_user_id
from phynetix.database import get_db
from phynetix.services.submission import submit_attempt

router = APIRouter()


class SubmitTestRequest(BaseModel):
    """Body sent by the test interface on submit."""
    attempt_id: Optional[str] = Field(None, description="Attempt being submitted")
    answers: Optional[Dict[str, Any]] = Field(None,
                                              description="question_id -> 'B' | ['A', 'C'] | '7.5'")
    time_taken_seconds: Optional[float] = Field(None, ge=0, description="Elapsed time on the client")

    @field_validator("attempt_id", mode="before")
    def coerce_attempt_id(cls, value):
        """Accept numeric ids; the lookup then reports them as not found."""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class SubjectScore(BaseModel):
    correct: int
    incorrect: int
    skipped: int
    total: int
    marks_obtained: float
    total_marks: float


class SubmitTestResponse(BaseModel):
    score: float
    total_marks: float
    correct: int
    incorrect: int
    skipped: int
    rank: int
    percentile: float
    question_results: Dict[str, Dict[str, Any]]
    subject_scores: Dict[str, SubjectScore]
    time_taken_seconds: Optional[int] = None


@router.post("/api/submit-test", response_model=SubmitTestResponse)
def submit_test(request: SubmitTestRequest,
                user_id: str = Depends(get_current_user_id),
                db: Session = Depends(get_db)):
    """Grade an attempt once, rank it and re-rank the rest of the test."""
    elapsed = None
    if request.time_taken_seconds is not None:
        elapsed = int(round(request.time_taken_seconds))
    return submit_attempt(db, user_id, request.attempt_id, request.answers, elapsed)
