"""
Submission Service - grades an in-progress attempt exactly once.

Order of operations:
1. Precondition checks (attempt id, ownership, not yet completed)
2. Grade every question of the test (see grading.py)
3. Place the new score among the other completed attempts
4. Persist the graded attempt with a conditional UPDATE
   (WHERE completed_at IS NULL), which is the real idempotency gate:
   of two racing submissions only one can match the row
5. Re-rank every completed attempt of the test (best effort)

A failed write in step 4 discards the computed result. A failure in step 5
is only logged; the submission is already committed.
"""

import json
import time
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from phynetix.exceptions import (
    AlreadySubmitted, InvalidRequest, NotFound, PersistenceFailure,
    ScoreCalculationFailure, StoreError,
)
from phynetix.logging_config import get_logger, log_with_context
from phynetix.models.attempt import TestAttempt
from phynetix.services.grading import grade_attempt
from phynetix.services.ranking import peer_scores, rerank_test, submission_standing

logger = get_logger("grading")
db_logger = get_logger("db")


def _load_open_attempt(db: Session, attempt_id: str, user_id: str, context: dict) -> TestAttempt:
    try:
        attempt = db.query(TestAttempt).options(
            joinedload(TestAttempt.test)
        ).filter(
            TestAttempt.id == attempt_id,
            TestAttempt.user_id == user_id,
        ).first()
    except SQLAlchemyError as exc:
        log_with_context(db_logger, "ERROR", "Failed to load test attempt",
            context=context, exc_info=True)
        raise StoreError.from_exception(exc)

    if attempt is None or attempt.test is None:
        log_with_context(logger, "WARNING", "Attempt not found", context=context)
        raise NotFound()

    if attempt.completed_at is not None:
        log_with_context(logger, "WARNING", "Attempt already submitted",
            context=context,
            extra_data={"completed_at": attempt.completed_at, "score": attempt.score})
        raise AlreadySubmitted()

    return attempt


def _persist(db: Session, attempt: TestAttempt, answers: dict, report,
             time_taken_seconds: Optional[int], rank: int, percentile: float,
             context: dict) -> datetime:
    completed_at = datetime.now(timezone.utc)
    try:
        result = db.execute(
            update(TestAttempt)
            .where(TestAttempt.id == attempt.id, TestAttempt.completed_at.is_(None))
            .values(
                answers=json.dumps(answers),
                score=report.score,
                total_marks=report.total_marks,
                time_taken_seconds=time_taken_seconds,
                completed_at=completed_at,
                rank=rank,
                percentile=percentile,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            log_with_context(logger, "WARNING",
                "Attempt completed by a concurrent submission; discarding this grade",
                context=context, extra_data={"score": report.score})
            raise AlreadySubmitted()
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        log_with_context(db_logger, "ERROR", "Failed to update attempt",
            context=context, extra_data={"score": report.score}, exc_info=True)
        raise PersistenceFailure()
    return completed_at


def submit_attempt(db: Session, user_id: str, attempt_id: Optional[str],
                   answers: Optional[dict], time_taken_seconds: Optional[int]) -> dict:
    """
    Grade and store a submission.

    Args:
        db: Database session
        user_id: Authenticated caller
        attempt_id: Attempt being submitted
        answers: question_id -> answer ("B", ["A", "C"], "7.5")
        time_taken_seconds: Elapsed time reported by the client

    Returns:
        Result payload for the UI (score, totals, rank, percentile,
        question_results, subject_scores, time_taken_seconds)

    Raises:
        InvalidRequest, NotFound, AlreadySubmitted,
        ScoreCalculationFailure, PersistenceFailure
    """
    if not attempt_id:
        raise InvalidRequest()

    start_time = time.time()
    answers = answers or {}
    context = {"attempt_id": str(attempt_id), "user_id": str(user_id)}

    log_with_context(logger, "INFO",
        "Submitting test attempt {} for user {}".format(attempt_id, user_id),
        context=context, extra_data={"answered": len(answers)})

    attempt = _load_open_attempt(db, attempt_id, user_id, context)
    test = attempt.test
    context["test_id"] = str(test.id)

    report = grade_attempt(db, test, answers, context=context)

    try:
        rank, percentile = submission_standing(
            peer_scores(db, test.id, attempt.id), report.score)
    except SQLAlchemyError:
        log_with_context(db_logger, "ERROR", "Failed to fetch peer scores",
            context=context, exc_info=True)
        raise ScoreCalculationFailure()

    _persist(db, attempt, answers, report, time_taken_seconds, rank, percentile, context)

    try:
        rerank_test(db, test.id, context=context)
    except SQLAlchemyError:
        db.rollback()
        log_with_context(db_logger, "ERROR",
            "Peer re-rank failed; submission already saved",
            context=context, exc_info=True)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Test {} submitted. Score: {}/{}, Rank: {}, Percentile: {}".format(
            attempt_id, report.score, report.total_marks, rank, percentile),
        context=context,
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "score": report.score,
            "total_marks": report.total_marks,
            "rank": rank,
            "percentile": percentile,
        })

    return {
        "score": report.score,
        "total_marks": report.total_marks,
        "correct": report.correct,
        "incorrect": report.incorrect,
        "skipped": report.skipped,
        "rank": rank,
        "percentile": percentile,
        "question_results": report.question_results,
        "subject_scores": report.subject_scores,
        "time_taken_seconds": time_taken_seconds,
    }
