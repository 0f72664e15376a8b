import pytest

from phynetix.services.grading import (
    GradableQuestion, GradeOutcome, MULTIPLE_CHOICE, INTEGER, SINGLE_CHOICE,
    grade_questions, normalize_question_type, select_questions,
    STRATEGY_REGULAR, STRATEGY_SECTION,
)


def question(kind=SINGLE_CHOICE, correct="B", marks=4, negative_marks=1, **kwargs):
    kwargs.setdefault("id", "q1")
    return GradableQuestion(kind=kind, correct_answer=correct, marks=marks,
                            negative_marks=negative_marks, **kwargs)


class TestSingleChoice:
    def test_exact_match_awards_full_marks(self):
        outcome = question().grade("B")
        assert outcome.status == GradeOutcome.CORRECT
        assert outcome.is_correct
        assert outcome.marks_obtained == 4

    def test_wrong_answer_deducts_negative_marks(self):
        outcome = question().grade("C")
        assert outcome.status == GradeOutcome.INCORRECT
        assert outcome.marks_obtained == -1

    @pytest.mark.parametrize("answer", [None, ""])
    def test_missing_answer_is_skipped(self, answer):
        outcome = question().grade(answer)
        assert outcome.status == GradeOutcome.SKIPPED
        assert outcome.marks_obtained == 0

    def test_numeric_key_matches_its_string_form(self):
        assert question(correct=2.0).grade("2").is_correct

    def test_single_item_list_answer_matches(self):
        outcome = question(correct="B").grade(["B"])
        assert outcome.is_correct
        assert outcome.marks_obtained == 4

    def test_list_values_are_joined_like_the_client(self):
        assert question(correct=["B"]).grade("B").is_correct
        assert question(correct="A,C").grade(["A", "C"]).is_correct
        assert not question(correct="A").grade(["A", "C"]).is_correct


class TestMultipleChoiceBase:
    def test_same_set_in_any_order_is_correct(self):
        q = question(kind=MULTIPLE_CHOICE, correct=["A", "C"])
        outcome = q.grade(["C", "A"])
        assert outcome.is_correct
        assert outcome.marks_obtained == 4

    @pytest.mark.parametrize("answer", [["A"], ["A", "B"]])
    def test_mismatch_is_incorrect_without_penalty(self, answer):
        q = question(kind=MULTIPLE_CHOICE, correct=["A", "C"])
        outcome = q.grade(answer)
        assert outcome.status == GradeOutcome.INCORRECT
        assert outcome.marks_obtained == 0

    def test_scalar_answer_is_treated_as_single_pick(self):
        q = question(kind=MULTIPLE_CHOICE, correct="A")
        assert q.grade("A").is_correct

    def test_empty_selection_is_skipped(self):
        q = question(kind=MULTIPLE_CHOICE, correct=["A", "C"])
        assert q.grade([]).status == GradeOutcome.SKIPPED


class TestMultipleChoiceAdvanced:
    def q(self):
        return question(kind=MULTIPLE_CHOICE, correct=["A", "B", "C"], marks=4, negative_marks=1)

    def test_partial_selection_gets_floored_partial_credit(self):
        outcome = self.q().grade(["A", "B"], advanced=True)
        assert outcome.marks_obtained == 2
        assert not outcome.is_correct
        assert outcome.is_partial
        assert outcome.status == GradeOutcome.CORRECT

    def test_partial_credit_multiplies_before_dividing(self):
        key = ["K{}".format(n) for n in range(49)]
        q = question(kind=MULTIPLE_CHOICE, correct=key, marks=49)
        assert q.grade(["K0"], advanced=True).marks_obtained == 1

    def test_full_selection_is_fully_correct(self):
        outcome = self.q().grade(["C", "B", "A"], advanced=True)
        assert outcome.marks_obtained == 4
        assert outcome.is_correct

    def test_any_wrong_pick_costs_flat_two_marks(self):
        outcome = self.q().grade(["A", "D"], advanced=True)
        assert outcome.status == GradeOutcome.INCORRECT
        assert outcome.marks_obtained == -2

    def test_flat_penalty_ignores_configured_negative_marks(self):
        q = question(kind=MULTIPLE_CHOICE, correct=["A", "B"], negative_marks=5)
        assert q.grade(["C"], advanced=True).marks_obtained == -2

    def test_repeated_pick_counts_once(self):
        outcome = self.q().grade(["A", "A"], advanced=True)
        assert outcome.marks_obtained == 1


class TestInteger:
    def test_within_tolerance_is_correct(self):
        outcome = question(kind=INTEGER, correct=7).grade("7.005")
        assert outcome.is_correct
        assert outcome.marks_obtained == 4

    def test_outside_tolerance_deducts(self):
        outcome = question(kind=INTEGER, correct=7).grade("7.02")
        assert outcome.status == GradeOutcome.INCORRECT
        assert outcome.marks_obtained == -1

    def test_unparseable_answer_is_incorrect_not_skipped(self):
        outcome = question(kind=INTEGER, correct=7).grade("seven")
        assert outcome.status == GradeOutcome.INCORRECT
        assert outcome.marks_obtained == -1


class TestBonus:
    @pytest.mark.parametrize("answer", [None, "", "A", ["A", "D"], "garbage"])
    def test_bonus_always_awards_full_marks(self, answer):
        for kind in (SINGLE_CHOICE, MULTIPLE_CHOICE, INTEGER):
            q = question(kind=kind, correct="B", is_bonus=True)
            outcome = q.grade(answer, advanced=True)
            assert outcome.is_correct
            assert outcome.marks_obtained == 4


def test_question_type_aliases():
    assert normalize_question_type("multi") == MULTIPLE_CHOICE
    assert normalize_question_type("multi_choice") == MULTIPLE_CHOICE
    assert normalize_question_type("numerical") == INTEGER
    assert normalize_question_type("mcq") == SINGLE_CHOICE
    assert normalize_question_type(None) == SINGLE_CHOICE


def test_defaults_apply_when_marks_missing():
    q = GradableQuestion(id="q", kind=SINGLE_CHOICE, correct_answer="A",
                         marks=None, negative_marks=None)
    assert q.marks == 4
    assert q.negative_marks == 1


class TestGradeQuestions:
    def test_totals_and_subject_buckets(self):
        questions = [
            question(id="p1", correct="A", subject_id="s1", subject="Physics"),
            question(id="p2", correct="B", subject_id="s1", subject="Physics"),
            question(id="c1", correct="C", subject_id="s2", subject="Chemistry"),
            question(id="m1", correct="D"),
        ]
        report = grade_questions(questions, {"p1": "A", "p2": "C", "c1": "C"})

        assert report.score == 4 - 1 + 4
        assert report.total_marks == 16
        assert (report.correct, report.incorrect, report.skipped) == (2, 1, 1)

        scores = report.subject_scores
        assert scores["Physics"] == {
            "correct": 1, "incorrect": 1, "skipped": 0, "total": 2,
            "marks_obtained": 3, "total_marks": 8,
        }
        assert scores["General"]["skipped"] == 1
        assert report.question_results["p2"]["marks_obtained"] == -1
        assert report.question_results["m1"]["user_answer"] is None

    def test_subjects_sharing_a_name_stay_separate(self):
        questions = [
            question(id="a", correct="A", subject_id="s1", subject="Physics"),
            question(id="b", correct="A", subject_id="s2", subject="Physics"),
        ]
        scores = grade_questions(questions, {"a": "A"}).subject_scores
        assert set(scores) == {"Physics", "Physics (2)"}
        assert scores["Physics"]["correct"] == 1
        assert scores["Physics (2)"]["skipped"] == 1

    def test_question_result_carries_display_metadata(self):
        q = question(id="x", correct="B", subject="Maths", chapter="Calculus",
                     question_number=3, question_text="d/dx x^2", options=["A", "B"])
        record = grade_questions([q], {"x": "B"}).question_results["x"]
        assert record["question_number"] == 3
        assert record["chapter"] == "Calculus"
        assert record["section_type"] == SINGLE_CHOICE
        assert record["is_bonus"] is False
        assert record["options"] == ["A", "B"]


class TestStrategySelection:
    def test_regular_schema_used_when_linked(self, db, build):
        test = build.test()
        build.regular_question(test, "Physics", "A")
        strategy, questions = select_questions(db, test)
        assert strategy == STRATEGY_REGULAR
        assert questions[0].subject == "Physics"

    def test_empty_regular_join_falls_back_to_sections(self, db, build):
        test = build.test()
        section = build.section(test, "Chemistry", "single_choice")
        build.section_question(test, section, 1, "B")
        strategy, questions = select_questions(db, test)
        assert strategy == STRATEGY_SECTION
        assert questions[0].subject == "Chemistry"

    def test_pdf_tests_always_use_sections(self, db, build):
        test = build.test(test_type="pdf")
        build.regular_question(test, "Physics", "A")
        section = build.section(test, "Maths", "integer")
        build.section_question(test, section, 1, 7)
        strategy, questions = select_questions(db, test)
        assert strategy == STRATEGY_SECTION
        assert [q.subject for q in questions] == ["Maths"]

    def test_section_questions_are_ordered_by_number(self, db, build):
        test = build.test(test_type="pdf")
        section = build.section(test, "Physics", "single_choice")
        for number in (3, 1, 2):
            build.section_question(test, section, number, "A")
        _, questions = select_questions(db, test)
        assert [q.question_number for q in questions] == [1, 2, 3]

    def test_regular_multi_select_key_is_split(self, db, build):
        test = build.test()
        build.regular_question(test, "Physics", "A, C", question_type="multi")
        _, questions = select_questions(db, test)
        assert questions[0].correct_answer == ["A", "C"]
        assert questions[0].grade(["C", "A"]).is_correct
