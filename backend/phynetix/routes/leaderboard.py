"""
Leaderboard API routes - ranked view of a test and score recalculation.

Ranks are stored on each attempt and kept consistent by the re-rank that
follows every submission, so the leaderboard is a plain ordered read.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from phynetix.auth import get_current_user_id, require_service_role
from phynetix.database import get_db
from phynetix.exceptions import NotFound
from phynetix.logging_config import get_logger, log_with_context
from phynetix.models.attempt import TestAttempt
from phynetix.models.test import Test
from phynetix.services.recalculation import recalculate_test

router = APIRouter()
logger = get_logger("http")


@router.get("/api/leaderboard")
def get_leaderboard(
    test_id: str = Query(..., description="Test to show the leaderboard for"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum entries"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Completed attempts of a test in rank order."""
    test = db.query(Test).filter(Test.id == test_id).first()
    if test is None:
        raise NotFound("Test not found")

    attempts = db.query(TestAttempt).filter(
        TestAttempt.test_id == test_id,
        TestAttempt.completed_at.isnot(None),
    ).order_by(
        TestAttempt.rank.is_(None), TestAttempt.rank.asc(), TestAttempt.score.desc()
    ).limit(limit).all()

    leaderboard = [
        {
            "rank": a.rank,
            "is_top_3": a.rank is not None and a.rank <= 3,
            "is_you": a.user_id == user_id,
            "attempt_id": str(a.id),
            "user_id": str(a.user_id),
            "score": a.score,
            "total_marks": a.total_marks,
            "percentile": a.percentile,
            "time_taken_seconds": a.time_taken_seconds,
            "completed_at": a.completed_at.isoformat() if a.completed_at else None,
        }
        for a in attempts
    ]

    log_with_context(logger, "INFO",
        "Leaderboard generated: {} attempts for test {}".format(len(leaderboard), test_id),
        context={"test_id": test_id, "user_id": user_id},
        extra_data={"entries": len(leaderboard)})

    return {
        "test_id": test_id,
        "test_name": test.name,
        "leaderboard": leaderboard,
    }


@router.post("/api/tests/{test_id}/recalculate")
def recalculate_scores(test_id: str,
                       claims: dict = Depends(require_service_role),
                       db: Session = Depends(get_db)):
    """Regrade every completed attempt of a test and re-rank them."""
    updated = recalculate_test(db, test_id)
    return {
        "success": True,
        "message": "Recalculated {} attempts".format(updated),
        "attempts_updated": updated,
    }
