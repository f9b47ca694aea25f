from datetime import date
import pytest
from instest.services.catalog import CatalogSnapshot, SubjectInfo, CriterionInfo
from instest.services.evaluation_builder import build_evaluation, EvaluationType
from instest.utils.scoring import ValidationError, ScoreValidationError

EVALUATION_DATE = date(2026, 3, 1)


@pytest.fixture
def snapshot():
    subject = SubjectInfo(id=1, code="intro_dive", name_he="צלילת הכרות", max_raw_score=50, passing_raw_score=35)
    criteria = tuple(
        CriterionInfo(id=10 + order, subject_id=1, weight=10, is_critical=order == 1, display_order=order)
        for order in range(1, 6)
    )
    return CatalogSnapshot(subject=subject, criteria=criteria)


def test_builds_record_and_item_scores(snapshot):
    record, items = build_evaluation(
        snapshot, student_id=7, instructor_id=3, lesson_name="שיעור 1", evaluation_date=EVALUATION_DATE,
        item_scores={11: 10, 12: 10, 13: 10, 14: 10, 15: 10}, course_name="קורס"
    )

    assert record.raw_score == 50
    assert record.percentage_score == 100.00
    assert record.final_score == record.percentage_score
    assert record.is_passing is True
    assert record.subject_id == 1
    assert record.evaluation_type == "practice"
    assert record.course_name == "קורס"
    assert [(i.criterion_id, i.value) for i in items] == [(11, 10), (12, 10), (13, 10), (14, 10), (15, 10)]
    assert {i.correlation_id for i in items} == {record.correlation_id}


def test_critical_criterion_comes_from_the_catalog(snapshot):
    record, _ = build_evaluation(
        snapshot, student_id=7, instructor_id=3, lesson_name=None, evaluation_date=EVALUATION_DATE,
        item_scores=[(11, 1), (12, 10), (13, 10), (14, 10), (15, 10)]
    )

    assert record.raw_score == 41
    assert record.has_critical_fail is True
    assert record.is_passing is False


def test_partial_scoring_uses_full_max(snapshot):
    record, items = build_evaluation(
        snapshot, student_id=7, instructor_id=None, lesson_name=None, evaluation_date=EVALUATION_DATE,
        item_scores={12: 10, 13: 10}
    )

    assert len(items) == 2
    assert record.percentage_score == 40.00
    assert record.is_passing is False


def test_criterion_from_other_subject_is_rejected(snapshot):
    with pytest.raises(ValidationError, match="criterion mismatch"):
        build_evaluation(
            snapshot, student_id=7, instructor_id=3, lesson_name=None, evaluation_date=EVALUATION_DATE,
            item_scores={11: 10, 99: 10}
        )


def test_duplicate_criterion_is_rejected(snapshot):
    with pytest.raises(ValidationError):
        build_evaluation(
            snapshot, student_id=7, instructor_id=3, lesson_name=None, evaluation_date=EVALUATION_DATE,
            item_scores=[(11, 10), (11, 7)]
        )


def test_out_of_scale_value_is_rejected(snapshot):
    with pytest.raises(ScoreValidationError):
        build_evaluation(
            snapshot, student_id=7, instructor_id=3, lesson_name=None, evaluation_date=EVALUATION_DATE,
            item_scores={11: 6}
        )


def test_instructor_required_when_requested(snapshot):
    with pytest.raises(ValidationError, match="instructor"):
        build_evaluation(
            snapshot, student_id=7, instructor_id=None, lesson_name=None, evaluation_date=EVALUATION_DATE,
            item_scores={11: 10}, evaluation_type=EvaluationType.TEST, require_instructor=True
        )


def test_practice_without_instructor_is_allowed(snapshot):
    record, _ = build_evaluation(
        snapshot, student_id=7, instructor_id=None, lesson_name=None, evaluation_date=EVALUATION_DATE,
        item_scores={11: 10}
    )

    assert record.instructor_id is None


def test_unknown_evaluation_type(snapshot):
    with pytest.raises(ValidationError):
        build_evaluation(
            snapshot, student_id=7, instructor_id=3, lesson_name=None, evaluation_date=EVALUATION_DATE,
            item_scores={11: 10}, evaluation_type="exam"
        )


def test_each_build_gets_its_own_correlation_id(snapshot):
    first, _ = build_evaluation(snapshot, 7, 3, None, EVALUATION_DATE, {11: 10})
    second, _ = build_evaluation(snapshot, 7, 3, None, EVALUATION_DATE, {11: 10})

    assert first.correlation_id != second.correlation_id
    assert first.percentage_score == second.percentage_score


def test_score_above_criterion_weight_is_rejected():
    subject = SubjectInfo(id=2, code="short", name_he="קצר", max_raw_score=10, passing_raw_score=6)
    criteria = (
        CriterionInfo(id=1, subject_id=2, weight=5, is_critical=False, display_order=1),
        CriterionInfo(id=2, subject_id=2, weight=5, is_critical=False, display_order=2),
    )
    snapshot = CatalogSnapshot(subject=subject, criteria=criteria)

    with pytest.raises(ValidationError, match="above its max"):
        build_evaluation(snapshot, 7, 3, None, EVALUATION_DATE, {1: 10, 2: 10})

    record, _ = build_evaluation(snapshot, 7, 3, None, EVALUATION_DATE, {1: 4, 2: 4})
    assert record.raw_score <= subject.max_raw_score
    assert record.percentage_score == 80.00
