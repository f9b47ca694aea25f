"""
Turns submitted criterion scores into records ready to be stored.

The builder never touches the database: it validates the scores against a
catalog snapshot, runs the scoring and returns plain records. Identity is
assigned when the records are written.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Mapping, Optional, Tuple, Union
from .catalog import CatalogSnapshot
from ..utils.scoring import ScoreEntry, ValidationError, compute_verdict, validate_score_value
import logging

logger = logging.getLogger(__name__)


class EvaluationType(str, Enum):
    PRACTICE = "practice"
    TEST = "test"


@dataclass(frozen=True)
class ItemScoreRecord:
    criterion_id: int
    value: int
    correlation_id: str

    def __post_init__(self):
        if self.criterion_id is None:
            raise ValidationError("Item score requires criterion_id")


@dataclass(frozen=True)
class EvaluationRecord:
    student_id: int
    subject_id: int
    instructor_id: Optional[int]
    evaluation_type: str
    course_name: Optional[str]
    lesson_name: Optional[str]
    evaluation_date: date
    raw_score: int
    percentage_score: float
    final_score: float
    is_passing: bool
    has_critical_fail: bool
    notes: Optional[str] = None
    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        if self.student_id is None:
            raise ValidationError("Evaluation requires student_id")
        if self.evaluation_date is None:
            raise ValidationError("Evaluation requires evaluation_date")


ItemScoresInput = Union[Mapping[int, int], List[Tuple[int, int]]]


def _as_pairs(item_scores: ItemScoresInput) -> List[Tuple[int, int]]:
    if isinstance(item_scores, Mapping):
        return list(item_scores.items())
    return [tuple(pair) for pair in item_scores]


def build_evaluation(snapshot: CatalogSnapshot, student_id: int, instructor_id: Optional[int],
                     lesson_name: Optional[str], evaluation_date: date, item_scores: ItemScoresInput,
                     *, course_name: Optional[str] = None, notes: Optional[str] = None,
                     evaluation_type: Union[EvaluationType, str] = EvaluationType.PRACTICE,
                     require_instructor: bool = False) -> Tuple[EvaluationRecord, List[ItemScoreRecord]]:
    """
    Validate item scores against the snapshot's subject and compute the verdict.

    item_scores is either {criterion_id: value} or a list of (criterion_id, value)
    pairs. Scoring only some of the subject's criteria is allowed; the
    percentage is still taken against the subject's full max_raw_score.
    """
    try:
        evaluation_type = EvaluationType(evaluation_type)
    except ValueError:
        raise ValidationError(f"Unknown evaluation type {evaluation_type!r}")

    if require_instructor and instructor_id is None:
        raise ValidationError(f"An instructor is required for {evaluation_type.value} evaluations")

    subject = snapshot.subject
    entries = []
    seen = set()

    for criterion_id, value in _as_pairs(item_scores):
        criterion = snapshot.criterion(criterion_id)
        if criterion is None:
            raise ValidationError(
                f"criterion mismatch: criterion {criterion_id} does not belong to subject {subject.code}"
            )
        if criterion_id in seen:
            raise ValidationError(f"Criterion {criterion_id} was scored more than once")
        seen.add(criterion_id)

        value = validate_score_value(value)
        if value > criterion.weight:
            raise ValidationError(f"Criterion {criterion_id} scored {value} above its max {criterion.weight}")

        entries.append(ScoreEntry(
            criterion_id=criterion_id,
            value=value,
            weight=criterion.weight,
            is_critical=criterion.is_critical
        ))

    verdict = compute_verdict(entries, subject.max_raw_score, subject.passing_raw_score, strict=False)
    correlation_id = uuid.uuid4().hex

    record = EvaluationRecord(
        student_id=student_id,
        subject_id=subject.id,
        instructor_id=instructor_id,
        evaluation_type=evaluation_type.value,
        course_name=course_name,
        lesson_name=lesson_name,
        evaluation_date=evaluation_date,
        raw_score=verdict.raw_score,
        percentage_score=verdict.percentage_score,
        final_score=verdict.final_score,
        is_passing=verdict.is_passing,
        has_critical_fail=verdict.has_critical_fail,
        notes=notes,
        correlation_id=correlation_id
    )
    items = [
        ItemScoreRecord(criterion_id=entry.criterion_id, value=entry.value, correlation_id=correlation_id)
        for entry in entries
    ]

    logger.info(
        f"Built {evaluation_type.value} evaluation for student {student_id} on {subject.code}: "
        f"raw={verdict.raw_score} pct={verdict.percentage_score} passing={verdict.is_passing}"
    )
    return record, items
