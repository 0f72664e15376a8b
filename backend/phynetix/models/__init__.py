from phynetix.models.test import Test
from phynetix.models.attempt import TestAttempt
from phynetix.models.course import Course, Chapter
from phynetix.models.question import Question, TestQuestion
from phynetix.models.section import TestSubject, TestSection, TestSectionQuestion

__all__ = [
    "Test", "TestAttempt", "Course", "Chapter", "Question", "TestQuestion",
    "TestSubject", "TestSection", "TestSectionQuestion",
]
