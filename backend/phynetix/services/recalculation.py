"""
Recalculation Service - regrades every completed attempt of a test.

Used after an answer key changes (a corrected key, a question marked bonus):
the stored answers of each completed attempt are graded again with the same
rules as a live submission, scores are written back in one bulk update and
the whole test is re-ranked.
"""

import time

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from phynetix.exceptions import NotFound, PersistenceFailure
from phynetix.logging_config import get_logger, log_with_context
from phynetix.models.attempt import TestAttempt
from phynetix.models.test import Test
from phynetix.services.grading import grade_questions, select_questions
from phynetix.services.ranking import rerank_test

logger = get_logger("grading")


def recalculate_test(db: Session, test_id: str) -> int:
    """
    Regrade and re-rank all completed attempts of ``test_id``.

    Returns:
        Number of attempts regraded
    """
    start_time = time.time()
    context = {"test_id": str(test_id)}

    test = db.query(Test).filter(Test.id == test_id).first()
    if test is None:
        raise NotFound("Test not found")

    strategy, questions = select_questions(db, test)
    attempts = db.query(TestAttempt).filter(
        TestAttempt.test_id == test_id,
        TestAttempt.completed_at.isnot(None),
    ).all()

    log_with_context(logger, "INFO",
        "Recalculating {} completed attempts for test {}".format(len(attempts), test_id),
        context=context, extra_data={"strategy": strategy, "questions": len(questions)})

    updates = []
    for attempt in attempts:
        report = grade_questions(questions, attempt.answers_dict, advanced=test.is_advanced)
        updates.append({
            "id": attempt.id,
            "score": report.score,
            "total_marks": report.total_marks,
        })
        if report.score != attempt.score:
            log_with_context(logger, "INFO", "Score changed on regrade",
                context={**context, "attempt_id": str(attempt.id), "user_id": str(attempt.user_id)},
                extra_data={"old_score": attempt.score, "new_score": report.score})

    try:
        if updates:
            db.execute(update(TestAttempt), updates)
        db.commit()
        rerank_test(db, test_id, context=context)
    except SQLAlchemyError:
        db.rollback()
        log_with_context(logger, "ERROR", "Failed to store recalculated scores",
            context=context, exc_info=True)
        raise PersistenceFailure()

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Recalculated {} attempts for test {}".format(len(updates), test_id),
        context=context, extra_data={"duration_ms": round(duration_ms, 2)})
    return len(updates)
