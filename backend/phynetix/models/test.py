"""
Test model - a published exam paper learners can attempt.

``test_type`` decides which question schema the grading engine reads
(``pdf`` tests always use the section schema) and ``exam_type`` decides the
multiple-choice marking rules (``jee_advanced`` awards partial credit).
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Integer, Boolean, DateTime, String
from sqlalchemy.orm import relationship
from phynetix.database import Base

TEST_TYPE_NORMAL = "normal"
TEST_TYPE_PDF = "pdf"

EXAM_TYPE_MAINS = "jee_mains"
EXAM_TYPE_ADVANCED = "jee_advanced"


class Test(Base):
    """SQLAlchemy model for the tests table."""
    __tablename__ = "tests"
    __test__ = False  # keep pytest from collecting the model

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique test identifier")
    name = Column(Text, nullable=False,
                  doc="Test title shown in the library")
    test_type = Column(Text, nullable=False, default=TEST_TYPE_NORMAL,
                       doc="normal | pdf")
    exam_type = Column(Text, nullable=True, default=EXAM_TYPE_MAINS,
                       doc="jee_mains | jee_advanced")
    duration_minutes = Column(Integer, nullable=False, default=180,
                              doc="Time allowed for one attempt")
    is_published = Column(Boolean, nullable=False, default=False,
                          doc="Only published tests can be started")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when test was created")

    attempts = relationship("TestAttempt", back_populates="test")
    test_questions = relationship("TestQuestion", back_populates="test",
                                  order_by="TestQuestion.order_index")
    subjects = relationship("TestSubject", back_populates="test",
                            order_by="TestSubject.order_index")

    @property
    def is_advanced(self) -> bool:
        return self.exam_type == EXAM_TYPE_ADVANCED

    def __repr__(self):
        return f"<Test(id={self.id}, name='{self.name}', type='{self.test_type}', exam='{self.exam_type}')>"
