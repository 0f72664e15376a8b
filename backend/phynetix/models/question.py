"""
Regular question schema.

Questions live in the shared question bank under a chapter and are linked to
a test through ``test_questions``. Each question carries its own type and
marking values; ``correct_answer`` is stored as text ("B", "A,C", "7.5").
"""

import uuid
import json
from sqlalchemy import Column, Text, Integer, Float, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from phynetix.database import Base


class Question(Base):
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chapter_id = Column(String(36), ForeignKey("chapters.id"), nullable=False)
    question_text = Column(Text, nullable=False, default="")
    question_type = Column(Text, nullable=False, default="single_choice",
                           doc="single_choice | multiple_choice | integer (aliases accepted)")
    options = Column(Text, nullable=True, doc="Options as JSON")
    image_url = Column(Text, nullable=True)
    correct_answer = Column(Text, nullable=False)
    marks = Column(Float, nullable=True, doc="Defaults to 4 when NULL")
    negative_marks = Column(Float, nullable=True, doc="Defaults to 1 when NULL")
    question_number = Column(Integer, nullable=True)

    chapter = relationship("Chapter", back_populates="questions")

    @property
    def options_list(self):
        if not self.options:
            return None
        try:
            return json.loads(self.options)
        except (json.JSONDecodeError, TypeError):
            return None

    def __repr__(self):
        return f"<Question(id={self.id}, type='{self.question_type}')>"


class TestQuestion(Base):
    """Link row placing a bank question into a test."""
    __tablename__ = "test_questions"
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    test_id = Column(String(36), ForeignKey("tests.id"), nullable=False)
    question_id = Column(String(36), ForeignKey("questions.id"), nullable=False)
    order_index = Column(Integer, nullable=True)

    test = relationship("Test", back_populates="test_questions")
    question = relationship("Question")

    __table_args__ = (
        Index("ix_test_questions_test_id", "test_id"),
    )
