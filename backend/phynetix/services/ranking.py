"""
Ranking Service - rank and percentile of completed attempts within a test.

Two computations:
1. submission_standing(): where a fresh score lands among its peers
   rank = 1 + number of peer scores strictly greater
   percentile = scores strictly below / all scores * 100
2. rank_all(): a full re-sort of every completed attempt
   (score DESC, completed_at ASC, id ASC) giving sequential ranks and
   percentile = (total - rank) / total * 100

Percentiles are rounded half-up to one decimal.
"""

import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from phynetix.logging_config import get_logger, log_with_context
from phynetix.models.attempt import TestAttempt

logger = get_logger("ranking")


def round_half_up(value: float, digits: int = 1) -> float:
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def submission_standing(peer_scores: Iterable[Optional[float]], score: float) -> Tuple[int, float]:
    """
    Rank and percentile of ``score`` among ``peer_scores`` plus itself.

    Ties share the best position: with peers [80, 60, 60, 40] a new 60
    ranks 2nd, and 1 of 5 scores is strictly below it (20.0).
    """
    scores = [s if s is not None else 0 for s in peer_scores]
    scores.append(score)
    rank = 1 + len([s for s in scores if s > score])
    below = len([s for s in scores if s < score])
    percentile = round_half_up(below / len(scores) * 100, 1)
    return rank, percentile


def _rank_sort_key(entry):
    attempt_id, score, completed_at = entry
    return (
        -(score if score is not None else 0),
        completed_at is None,
        completed_at.timestamp() if completed_at is not None else 0,
        str(attempt_id),
    )


def rank_all(entries: Iterable[tuple]) -> List[dict]:
    """
    Rank every completed attempt of a test.

    Args:
        entries: (attempt_id, score, completed_at) tuples

    Returns:
        [{"id", "rank", "percentile"}] in rank order
    """
    ordered = sorted(entries, key=_rank_sort_key)
    total = len(ordered)
    return [
        {
            "id": attempt_id,
            "rank": rank,
            "percentile": round_half_up((total - rank) / total * 100, 1),
        }
        for rank, (attempt_id, _, _) in enumerate(ordered, 1)
    ]


def peer_scores(db: Session, test_id: str, exclude_attempt_id: str) -> List[Optional[float]]:
    """Scores of every other completed attempt of the test."""
    rows = db.query(TestAttempt.score).filter(
        TestAttempt.test_id == test_id,
        TestAttempt.completed_at.isnot(None),
        TestAttempt.id != exclude_attempt_id,
    ).all()
    return [row.score for row in rows]


def rerank_test(db: Session, test_id: str, context: dict = None) -> int:
    """
    Rewrite rank and percentile for every completed attempt of a test.

    The snapshot read locks the rows (SELECT ... FOR UPDATE on PostgreSQL) so
    two concurrent submissions re-rank one after the other instead of
    overwriting each other from stale snapshots. The writes go out as a
    single bulk UPDATE and are committed here.

    Returns:
        Number of attempts re-ranked
    """
    start_time = time.time()

    rows = db.query(
        TestAttempt.id, TestAttempt.score, TestAttempt.completed_at
    ).filter(
        TestAttempt.test_id == test_id,
        TestAttempt.completed_at.isnot(None),
    ).with_for_update().all()

    ranking = rank_all((row.id, row.score, row.completed_at) for row in rows)
    if ranking:
        db.execute(update(TestAttempt), ranking)
    db.commit()

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Re-ranked {} completed attempts for test {}".format(len(ranking), test_id),
        context={"test_id": str(test_id), **(context or {})},
        extra_data={"duration_ms": round(duration_ms, 2), "attempts": len(ranking)})
    return len(ranking)
