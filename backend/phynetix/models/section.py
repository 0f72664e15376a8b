"""
Section-based question schema.

A test is split into subjects, each subject into typed sections
(single_choice, multiple_choice, integer) and each section holds questions
written for this test only. This is the schema PDF tests and every newer
test use; ``correct_answer`` is JSON so its shape can follow the section
type ("B", ["A", "C"], 7).
"""

import uuid
import json
from sqlalchemy import Column, Text, Integer, Float, Boolean, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from phynetix.database import Base


class TestSubject(Base):
    __tablename__ = "test_subjects"
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    test_id = Column(String(36), ForeignKey("tests.id"), nullable=False)
    name = Column(Text, nullable=False, doc="Subject bucket used in grading")
    order_index = Column(Integer, nullable=True)

    test = relationship("Test", back_populates="subjects")
    sections = relationship("TestSection", back_populates="subject",
                            order_by="TestSection.order_index")


class TestSection(Base):
    __tablename__ = "test_sections"
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    subject_id = Column(String(36), ForeignKey("test_subjects.id"), nullable=False)
    name = Column(Text, nullable=True)
    section_type = Column(Text, nullable=False, default="single_choice")
    order_index = Column(Integer, nullable=True)

    subject = relationship("TestSubject", back_populates="sections")
    questions = relationship("TestSectionQuestion", back_populates="section")


class TestSectionQuestion(Base):
    __tablename__ = "test_section_questions"
    __test__ = False

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    test_id = Column(String(36), ForeignKey("tests.id"), nullable=False)
    section_id = Column(String(36), ForeignKey("test_sections.id"), nullable=False)
    question_number = Column(Integer, nullable=False)
    question_text = Column(Text, nullable=True)
    options = Column(Text, nullable=True, doc="Options as JSON")
    image_url = Column(Text, nullable=True)
    correct_answer = Column(Text, nullable=False, doc="Answer key as JSON")
    marks = Column(Float, nullable=True)
    negative_marks = Column(Float, nullable=True)
    is_bonus = Column(Boolean, nullable=True, default=False)
    chapter = Column(Text, nullable=True)
    order_index = Column(Integer, nullable=True)

    section = relationship("TestSection", back_populates="questions")

    __table_args__ = (
        Index("ix_test_section_questions_test_id", "test_id"),
    )

    @property
    def correct_answer_value(self):
        """Decoded answer key; a bare non-JSON string is returned unchanged."""
        try:
            return json.loads(self.correct_answer)
        except (json.JSONDecodeError, TypeError):
            return self.correct_answer

    @property
    def options_list(self):
        if not self.options:
            return None
        try:
            return json.loads(self.options)
        except (json.JSONDecodeError, TypeError):
            return None
