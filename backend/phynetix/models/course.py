"""
Course and Chapter models - the content tree regular questions hang from.

For grading, the course name is the subject bucket and the chapter name is
the chapter label shown in the per-question review.
"""

import uuid
from sqlalchemy import Column, Text, Integer, ForeignKey, String
from sqlalchemy.orm import relationship
from phynetix.database import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(Text, nullable=False, doc="Subject name, e.g. Physics")

    chapters = relationship("Chapter", back_populates="course",
                            order_by="Chapter.order_index")

    def __repr__(self):
        return f"<Course(id={self.id}, name='{self.name}')>"


class Chapter(Base):
    __tablename__ = "chapters"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id = Column(String(36), ForeignKey("courses.id"), nullable=False)
    name = Column(Text, nullable=False)
    order_index = Column(Integer, nullable=True)

    course = relationship("Course", back_populates="chapters")
    questions = relationship("Question", back_populates="chapter")

    def __repr__(self):
        return f"<Chapter(id={self.id}, name='{self.name}')>"
