"""
Grading Service - marks every question of a test under its marking policy.

A test's questions come from exactly one of two schemas:
1. Regular: bank questions linked through test_questions (subject = course)
2. Section-based: per-test questions under typed sections (subject = test subject)

Strategy selection happens once per test: PDF tests always use the section
schema, every other test tries the regular join first and falls back to the
section schema when it is empty (tests created before the section editor
existed still only have regular rows).

Marking rules per question:
- bonus (section schema only): full marks for everyone, answered or not
- no answer (None, "", []): skipped, no marks change
- single choice: exact string match -> +marks, else -negative_marks
- multiple choice: sorted selections equal -> +marks; otherwise
    jee_advanced: no wrong pick -> floor(marks * picked_correct / key_size),
                  any wrong pick -> flat MULTI_WRONG_PENALTY
    other exams:  incorrect, no marks change
- integer/numerical: |user - key| < INTEGER_TOLERANCE -> +marks,
  else (including unparseable input) -> -negative_marks
"""

import json
import math
import time
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from phynetix.exceptions import ScoreCalculationFailure
from phynetix.logging_config import get_logger, log_with_context
from phynetix.models.course import Chapter
from phynetix.models.question import Question, TestQuestion
from phynetix.models.section import TestSection, TestSectionQuestion
from phynetix.models.test import Test, TEST_TYPE_PDF

logger = get_logger("grading")

DEFAULT_MARKS = 4
DEFAULT_NEGATIVE_MARKS = 1
# Applied to any wrong pick in a JEE Advanced multi-select, independent of
# the question's configured negative_marks
MULTI_WRONG_PENALTY = 2
INTEGER_TOLERANCE = 0.01
GENERAL_SUBJECT = "General"

SINGLE_CHOICE = "single_choice"
MULTIPLE_CHOICE = "multiple_choice"
INTEGER = "integer"

_TYPE_ALIASES = {
    "multiple_choice": MULTIPLE_CHOICE,
    "multi_choice": MULTIPLE_CHOICE,
    "multi": MULTIPLE_CHOICE,
    "integer": INTEGER,
    "numerical": INTEGER,
}

STRATEGY_REGULAR = "regular"
STRATEGY_SECTION = "section"


def normalize_question_type(value: Optional[str]) -> str:
    """Map stored type names onto the three graded kinds."""
    return _TYPE_ALIASES.get((value or "").strip().lower(), SINGLE_CHOICE)


def _as_text(value) -> str:
    """Stringify a value the way the client serialises it (7.0 -> "7", ["B"] -> "B")."""
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else _as_text(item) for item in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_list(value) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _number(value):
    """Drop a trailing .0 so marks render as the UI expects."""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _parse_float(value) -> Optional[float]:
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def is_unanswered(answer) -> bool:
    if answer is None:
        return True
    if isinstance(answer, str) and answer == "":
        return True
    if isinstance(answer, (list, tuple)) and len(answer) == 0:
        return True
    return False


class GradeOutcome:
    """Result of grading one answer against one question."""

    CORRECT = "correct"
    INCORRECT = "incorrect"
    SKIPPED = "skipped"

    def __init__(self, status: str, marks_obtained: float = 0,
                 is_correct: bool = False, is_partial: bool = False):
        self.status = status
        self.marks_obtained = marks_obtained
        self.is_correct = is_correct
        self.is_partial = is_partial

    def __repr__(self):
        return f"<GradeOutcome(status='{self.status}', marks={self.marks_obtained}, partial={self.is_partial})>"


class GradableQuestion:
    """
    Common grading interface over both question schemas.

    Subclasses only differ in how they are built from ORM rows; grading
    itself is shared.
    """

    source = None

    def __init__(self, id: str, kind: str, correct_answer, marks=None,
                 negative_marks=None, is_bonus: bool = False,
                 subject_id: Optional[str] = None, subject: Optional[str] = None,
                 chapter: Optional[str] = None, question_number: Optional[int] = None,
                 question_text: Optional[str] = None, options=None,
                 image_url: Optional[str] = None, order_index: Optional[int] = None):
        self.id = str(id)
        self.kind = normalize_question_type(kind)
        self.correct_answer = correct_answer
        self.marks = DEFAULT_MARKS if marks is None else marks
        self.negative_marks = DEFAULT_NEGATIVE_MARKS if negative_marks is None else negative_marks
        self.is_bonus = bool(is_bonus)
        self.subject_id = subject_id
        self.subject = subject or GENERAL_SUBJECT
        self.chapter = chapter or GENERAL_SUBJECT
        self.question_number = question_number
        self.question_text = question_text
        self.options = options
        self.image_url = image_url
        self.order_index = order_index

    @property
    def subject_key(self) -> str:
        """Bucket identity: the subject's id, the display name only as a fallback."""
        return self.subject_id or "name:" + self.subject

    def grade(self, answer, advanced: bool = False) -> GradeOutcome:
        if self.is_bonus:
            return GradeOutcome(GradeOutcome.CORRECT, self.marks, is_correct=True)
        if is_unanswered(answer):
            return GradeOutcome(GradeOutcome.SKIPPED)
        if self.kind == MULTIPLE_CHOICE:
            return self._grade_multiple(answer, advanced)
        if self.kind == INTEGER:
            return self._grade_integer(answer)
        return self._grade_single(answer)

    def _correct(self) -> GradeOutcome:
        return GradeOutcome(GradeOutcome.CORRECT, self.marks, is_correct=True)

    def _incorrect(self, penalty) -> GradeOutcome:
        return GradeOutcome(GradeOutcome.INCORRECT, -penalty if penalty else 0)

    def _grade_single(self, answer) -> GradeOutcome:
        if _as_text(answer) == _as_text(self.correct_answer):
            return self._correct()
        return self._incorrect(self.negative_marks)

    def _grade_multiple(self, answer, advanced: bool) -> GradeOutcome:
        key = [_as_text(v) for v in _as_list(self.correct_answer)]
        picks = []
        for value in _as_list(answer):
            text = _as_text(value)
            if text not in picks:
                picks.append(text)

        if json.dumps(sorted(picks)) == json.dumps(sorted(key)):
            return self._correct()

        if not advanced:
            return self._incorrect(0)

        key_set = set(key)
        correct_count = len([p for p in picks if p in key_set])
        wrong_count = len(picks) - correct_count

        if wrong_count > 0:
            return self._incorrect(MULTI_WRONG_PENALTY)
        if correct_count > 0:
            awarded = math.floor(self.marks * correct_count / len(key_set))
            if correct_count == len(key_set):
                return GradeOutcome(GradeOutcome.CORRECT, awarded, is_correct=True)
            return GradeOutcome(GradeOutcome.CORRECT, awarded, is_partial=True)
        return self._incorrect(0)

    def _grade_integer(self, answer) -> GradeOutcome:
        user_value = _parse_float(answer)
        key_value = _parse_float(self.correct_answer)
        if user_value is not None and key_value is not None \
                and abs(user_value - key_value) < INTEGER_TOLERANCE:
            return self._correct()
        return self._incorrect(self.negative_marks)

    def result_record(self, answer, outcome: GradeOutcome) -> dict:
        return {
            "question_number": self.question_number,
            "question_text": self.question_text,
            "options": self.options,
            "image_url": self.image_url,
            "correct_answer": self.correct_answer,
            "user_answer": None if answer == "" else answer,
            "is_correct": outcome.is_correct,
            "is_partial": outcome.is_partial,
            "is_bonus": self.is_bonus,
            "marks_obtained": _number(outcome.marks_obtained),
            "marks": _number(self.marks),
            "negative_marks": _number(self.negative_marks),
            "subject": self.subject,
            "section_type": self.kind,
            "chapter": self.chapter,
        }


class RegularQuestion(GradableQuestion):
    source = STRATEGY_REGULAR

    @classmethod
    def from_row(cls, link: TestQuestion) -> "RegularQuestion":
        q = link.question
        chapter = q.chapter
        course = chapter.course if chapter else None
        kind = normalize_question_type(q.question_type)
        correct = q.correct_answer
        if kind == MULTIPLE_CHOICE:
            correct = _split_answer_key(correct)
        return cls(
            id=q.id,
            kind=kind,
            correct_answer=correct,
            marks=q.marks,
            negative_marks=q.negative_marks,
            subject_id=course.id if course else None,
            subject=course.name if course else None,
            chapter=chapter.name if chapter else None,
            question_number=q.question_number,
            question_text=q.question_text,
            options=q.options_list,
            image_url=q.image_url,
            order_index=link.order_index,
        )


class SectionQuestion(GradableQuestion):
    source = STRATEGY_SECTION

    @classmethod
    def from_row(cls, row: TestSectionQuestion) -> "SectionQuestion":
        section = row.section
        subject = section.subject if section else None
        return cls(
            id=row.id,
            kind=section.section_type if section else SINGLE_CHOICE,
            correct_answer=row.correct_answer_value,
            marks=row.marks,
            negative_marks=row.negative_marks,
            is_bonus=row.is_bonus,
            subject_id=subject.id if subject else None,
            subject=subject.name if subject else None,
            chapter=row.chapter or (section.name if section else None),
            question_number=row.question_number,
            question_text=row.question_text,
            options=row.options_list,
            image_url=row.image_url,
            order_index=row.order_index,
        )


def _split_answer_key(value):
    """Regular multi-select keys are stored as a JSON list or "A, C"."""
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                pass
        return [part.strip() for part in text.split(",") if part.strip()]
    return value


def _sort_key(question: GradableQuestion):
    number = question.question_number
    index = question.order_index
    if question.source == STRATEGY_REGULAR:
        return (index is None, index or 0, number is None, number or 0)
    return (number is None, number or 0, index is None, index or 0)


def load_regular_questions(db: Session, test_id: str) -> List[RegularQuestion]:
    links = db.query(TestQuestion).options(
        joinedload(TestQuestion.question).joinedload(Question.chapter).joinedload(Chapter.course)
    ).filter(TestQuestion.test_id == test_id).all()
    questions = [RegularQuestion.from_row(link) for link in links if link.question is not None]
    return sorted(questions, key=_sort_key)


def load_section_questions(db: Session, test_id: str) -> List[SectionQuestion]:
    rows = db.query(TestSectionQuestion).options(
        joinedload(TestSectionQuestion.section).joinedload(TestSection.subject)
    ).filter(TestSectionQuestion.test_id == test_id).all()
    return sorted((SectionQuestion.from_row(r) for r in rows), key=_sort_key)


def select_questions(db: Session, test: Test) -> Tuple[str, List[GradableQuestion]]:
    """
    Pick the question schema for a test and load its questions.

    Raises:
        ScoreCalculationFailure: the question set could not be read
    """
    try:
        if test.test_type == TEST_TYPE_PDF:
            return STRATEGY_SECTION, load_section_questions(db, test.id)

        questions = load_regular_questions(db, test.id)
        if questions:
            return STRATEGY_REGULAR, questions

        log_with_context(logger, "INFO",
            "No regular questions for test {}, grading with section schema".format(test.id),
            context={"test_id": str(test.id)})
        return STRATEGY_SECTION, load_section_questions(db, test.id)
    except SQLAlchemyError:
        log_with_context(logger, "ERROR", "Failed to fetch questions",
            context={"test_id": str(test.id)}, exc_info=True)
        raise ScoreCalculationFailure()


class GradingReport:
    """Totals, per-question records and per-subject buckets for one attempt."""

    def __init__(self):
        self.score = 0
        self.total_marks = 0
        self.correct = 0
        self.incorrect = 0
        self.skipped = 0
        self.question_results: Dict[str, dict] = {}
        self._buckets: Dict[str, dict] = {}

    def bucket(self, question: GradableQuestion) -> dict:
        key = question.subject_key
        if key not in self._buckets:
            self._buckets[key] = {
                "name": question.subject,
                "correct": 0,
                "incorrect": 0,
                "skipped": 0,
                "total": 0,
                "marks_obtained": 0,
                "total_marks": 0,
            }
        return self._buckets[key]

    def record(self, question: GradableQuestion, answer, outcome: GradeOutcome):
        bucket = self.bucket(question)
        bucket["total"] += 1
        bucket["total_marks"] += question.marks
        self.total_marks += question.marks

        setattr(self, outcome.status, getattr(self, outcome.status) + 1)
        bucket[outcome.status] += 1

        self.score += outcome.marks_obtained
        bucket["marks_obtained"] += outcome.marks_obtained

        self.question_results[question.id] = question.result_record(answer, outcome)

    @property
    def subject_scores(self) -> Dict[str, dict]:
        """Buckets keyed by display name; a repeated name gets a " (n)" suffix."""
        scores = {}
        for bucket in self._buckets.values():
            name = bucket["name"]
            label = name
            n = 2
            while label in scores:
                label = "{} ({})".format(name, n)
                n += 1
            scores[label] = {
                k: _number(v) for k, v in bucket.items() if k != "name"
            }
        return scores


def grade_questions(questions: List[GradableQuestion], answers: dict,
                    advanced: bool = False) -> GradingReport:
    """Grade every question in order; ``answers`` maps question id -> answer."""
    report = GradingReport()
    answers = answers or {}
    for question in questions:
        answer = answers.get(question.id)
        report.record(question, answer, question.grade(answer, advanced))
    report.score = _number(report.score)
    report.total_marks = _number(report.total_marks)
    return report


def grade_attempt(db: Session, test: Test, answers: dict,
                  context: Optional[dict] = None) -> GradingReport:
    """Load the test's questions and grade ``answers`` against them."""
    start_time = time.time()
    strategy, questions = select_questions(db, test)
    report = grade_questions(questions, answers, advanced=test.is_advanced)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Graded {} questions via {} schema: score {}/{} (correct={}, incorrect={}, skipped={})".format(
            len(questions), strategy, report.score, report.total_marks,
            report.correct, report.incorrect, report.skipped),
        context={"test_id": str(test.id), **(context or {})},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "strategy": strategy,
            "exam_type": test.exam_type,
            "score": report.score,
        })
    return report
