import json
import os
import uuid
from datetime import datetime, timedelta, timezone

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-signing-secret")

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from phynetix import auth
from phynetix.database import Base, get_db, enable_sqlite_pragmas
from phynetix.main import app
from phynetix.models import (
    Chapter, Course, Question, Test, TestAttempt, TestQuestion,
    TestSection, TestSectionQuestion, TestSubject,
)


@pytest.fixture()
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_pragmas(test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_token(user_id=None, audience=auth.JWT_AUDIENCE, secret=None, **claims):
    payload = {"aud": audience, "exp": datetime.now(timezone.utc) + timedelta(hours=1)}
    if user_id is not None:
        payload["sub"] = user_id
    payload.update(claims)
    return jwt.encode(payload, secret or auth.JWT_SECRET, algorithm=auth.JWT_ALGORITHM)


def auth_headers(user_id):
    return {"Authorization": "Bearer " + make_token(user_id)}


def service_headers():
    token = jwt.encode({"role": auth.SERVICE_ROLE}, auth.JWT_SECRET, algorithm=auth.JWT_ALGORITHM)
    return {"Authorization": "Bearer " + token}


class Builder:
    """Inserts tests, questions and attempts for a scenario."""

    def __init__(self, session):
        self.db = session

    def _id(self):
        return str(uuid.uuid4())

    def test(self, test_type="normal", exam_type="jee_mains", published=True, name="Mock Test 1"):
        test = Test(id=self._id(), name=name, test_type=test_type, exam_type=exam_type,
                    duration_minutes=180, is_published=published)
        self.db.add(test)
        self.db.commit()
        return test

    def section(self, test, subject_name, section_type, section_name=None, subject=None):
        if subject is None:
            subject = TestSubject(id=self._id(), test_id=test.id, name=subject_name, order_index=0)
            self.db.add(subject)
        section = TestSection(id=self._id(), subject_id=subject.id, name=section_name,
                              section_type=section_type, order_index=0)
        self.db.add(section)
        self.db.commit()
        return section

    def section_question(self, test, section, number, correct, marks=4, negative_marks=1,
                         is_bonus=False, chapter=None):
        q = TestSectionQuestion(
            id=self._id(), test_id=test.id, section_id=section.id, question_number=number,
            question_text="Q{}".format(number), correct_answer=json.dumps(correct),
            marks=marks, negative_marks=negative_marks, is_bonus=is_bonus, chapter=chapter,
        )
        self.db.add(q)
        self.db.commit()
        return q

    def regular_question(self, test, course_name, correct, question_type="single_choice",
                         marks=4, negative_marks=1, number=1, chapter_name="Kinematics"):
        course = self.db.query(Course).filter(Course.name == course_name).first()
        if course is None:
            course = Course(id=self._id(), name=course_name)
            self.db.add(course)
        chapter = Chapter(id=self._id(), course_id=course.id, name=chapter_name)
        question = Question(id=self._id(), chapter_id=chapter.id, question_text="Q",
                            question_type=question_type, correct_answer=correct,
                            marks=marks, negative_marks=negative_marks, question_number=number)
        self.db.add_all([chapter, question])
        self.db.add(TestQuestion(id=self._id(), test_id=test.id, question_id=question.id,
                                 order_index=number))
        self.db.commit()
        return question

    def attempt(self, test, user_id=None, score=None, completed_minutes_ago=None):
        attempt = TestAttempt(id=self._id(), test_id=test.id, user_id=user_id or self._id(),
                              answers="{}", started_at=datetime.now(timezone.utc))
        if completed_minutes_ago is not None:
            attempt.score = score
            attempt.total_marks = 100
            attempt.completed_at = datetime.now(timezone.utc) - timedelta(minutes=completed_minutes_ago)
        self.db.add(attempt)
        self.db.commit()
        return attempt


@pytest.fixture()
def build(db):
    return Builder(db)


@pytest.fixture()
def headers():
    """headers(user_id) -> Authorization header for that user."""
    return auth_headers


@pytest.fixture()
def service_auth():
    return service_headers()
