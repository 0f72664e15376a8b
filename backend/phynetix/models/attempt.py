"""
TestAttempt model - one user's attempt at one test.

The row is created when the user starts the test and graded exactly once
on submission: score, total_marks, time_taken_seconds, completed_at, rank
and percentile are all written by the submission engine. ``completed_at``
being set is what marks an attempt as graded; later re-ranks only touch
rank and percentile.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, Float, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from phynetix.database import Base


class TestAttempt(Base):
    """SQLAlchemy model for the test_attempts table."""
    __tablename__ = "test_attempts"
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique attempt identifier")
    user_id = Column(String(36), nullable=False,
                     doc="Owning user (resolved from the bearer token)")
    test_id = Column(String(36), ForeignKey("tests.id"), nullable=False,
                     doc="Test being attempted")
    answers = Column(Text, nullable=False, default="{}",
                     doc="Answers as JSON: {question_id: 'B' | ['A', 'C'] | '7.5'}")
    score = Column(Float, nullable=True,
                   doc="Marks obtained, negative marking applied")
    total_marks = Column(Float, nullable=True,
                         doc="Maximum marks available in the test")
    time_taken_seconds = Column(Integer, nullable=True,
                                doc="Elapsed time reported by the client")
    started_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc),
                        doc="When the attempt was started")
    completed_at = Column(DateTime, nullable=True,
                          doc="When the attempt was graded (NULL while in progress)")
    rank = Column(Integer, nullable=True,
                  doc="1-based position among completed attempts of the test")
    percentile = Column(Float, nullable=True,
                        doc="0-100, one decimal")

    test = relationship("Test", back_populates="attempts")

    __table_args__ = (
        Index("ix_test_attempts_user_id", "user_id"),
        Index("ix_test_attempts_test_id", "test_id"),
        Index("ix_test_attempts_test_completed", "test_id", "completed_at"),
    )

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def answers_dict(self):
        """Parse answers JSON string to dict."""
        if isinstance(self.answers, dict):
            return self.answers
        try:
            return json.loads(self.answers) if self.answers else {}
        except (json.JSONDecodeError, TypeError):
            return {}

    def __repr__(self):
        return f"<TestAttempt(id={self.id}, user={self.user_id}, test={self.test_id}, score={self.score})>"
