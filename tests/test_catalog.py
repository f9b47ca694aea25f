import pytest
from sqlalchemy import select, func
from instest.models import EvaluationSubject
from instest.services.catalog import (CatalogError, CatalogSnapshot, CriterionInfo, SubjectInfo, STANDARD_SUBJECTS,
                                      load_catalog_snapshot, seed_catalog)
from instest.utils.scoring import ValidationError


def criterion(id, subject_id=1, weight=10, order=0, critical=False):
    return CriterionInfo(id=id, subject_id=subject_id, weight=weight, is_critical=critical, display_order=order)


def subject(max_raw_score=20, passing_raw_score=10):
    return SubjectInfo(id=1, code="test", name_he="בדיקה", max_raw_score=max_raw_score,
                       passing_raw_score=passing_raw_score)


def test_criteria_are_ordered_by_display_order():
    snapshot = CatalogSnapshot(subject=subject(), criteria=(criterion(5, order=2), criterion(6, order=1)))

    assert [c.id for c in snapshot.criteria_for(1)] == [6, 5]
    assert snapshot.criteria_for(2) == ()
    assert snapshot.criterion(5).display_order == 2
    assert snapshot.criterion(99) is None


def test_max_must_match_criteria_weights():
    with pytest.raises(CatalogError):
        CatalogSnapshot(subject=subject(max_raw_score=30), criteria=(criterion(1), criterion(2)))


def test_passing_cannot_exceed_max():
    with pytest.raises(CatalogError):
        subject(max_raw_score=10, passing_raw_score=11)


def test_weight_must_be_positive():
    with pytest.raises(ValidationError):
        criterion(1, weight=0)


def test_criterion_of_other_subject_is_rejected():
    with pytest.raises(CatalogError):
        CatalogSnapshot(subject=subject(), criteria=(criterion(1), criterion(2, subject_id=2)))


def test_snapshot_is_immutable():
    snapshot = CatalogSnapshot(subject=subject(), criteria=(criterion(1), criterion(2)))

    with pytest.raises(AttributeError):
        snapshot.criteria = ()


def test_standard_subjects_are_consistent():
    for data in STANDARD_SUBJECTS:
        assert len(data["criteria"]) * 10 == data["max_raw_score"]
        assert data["passing_raw_score"] <= data["max_raw_score"]


async def test_seed_catalog_is_idempotent(session):
    # the db fixture already seeded once
    assert await seed_catalog(session) == 0

    count = await session.execute(select(func.count(EvaluationSubject.id)))
    assert count.scalar() == len(STANDARD_SUBJECTS)


async def test_load_snapshot_by_code(session):
    snapshot = await load_catalog_snapshot(session, code="water_lesson")

    assert snapshot.subject.max_raw_score == 130
    assert snapshot.subject.passing_raw_score == 78
    assert len(snapshot.criteria) == 13
    assert [c.display_order for c in snapshot.criteria] == list(range(1, 14))
    assert [c.display_order for c in snapshot.criteria if c.is_critical] == [4, 8, 10, 11]


async def test_load_snapshot_by_id(session):
    by_code = await load_catalog_snapshot(session, code="intro_dive")
    by_id = await load_catalog_snapshot(session, subject_id=by_code.subject.id)

    assert by_id == by_code


async def test_load_unknown_subject(session):
    assert await load_catalog_snapshot(session, code="missing") is None

    with pytest.raises(ValueError):
        await load_catalog_snapshot(session)
