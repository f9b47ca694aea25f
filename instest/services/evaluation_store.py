from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from ..models.evaluation import StudentEvaluation, EvaluationItemScore
from .evaluation_builder import EvaluationRecord, ItemScoreRecord
import logging

logger = logging.getLogger(__name__)

RECORD_FIELDS = (
    "student_id", "subject_id", "instructor_id", "evaluation_type", "course_name", "lesson_name",
    "evaluation_date", "raw_score", "percentage_score", "final_score", "is_passing",
    "has_critical_fail", "notes",
)


def _apply_record(evaluation: StudentEvaluation, record: EvaluationRecord):
    for name in RECORD_FIELDS:
        setattr(evaluation, name, getattr(record, name))


async def create_evaluation(session: AsyncSession, record: EvaluationRecord,
                            items: List[ItemScoreRecord]) -> int:
    """Write the evaluation and all of its item scores in one transaction"""
    try:
        evaluation = StudentEvaluation()
        _apply_record(evaluation, record)
        session.add(evaluation)
        await session.flush()

        for item in items:
            session.add(EvaluationItemScore(
                evaluation_id=evaluation.id,
                criterion_id=item.criterion_id,
                score=item.value
            ))

        await session.commit()
        logger.info(f"Stored evaluation {evaluation.id} ({record.correlation_id}) with {len(items)} item scores")
        return evaluation.id
    except Exception as e:
        logger.error(f"Error storing evaluation {record.correlation_id}: {e}")
        await session.rollback()
        raise


async def replace_evaluation(session: AsyncSession, evaluation_id: int, record: EvaluationRecord,
                             items: List[ItemScoreRecord]) -> Optional[int]:
    """
    Overwrite a stored evaluation with a freshly built record. The old item
    scores are removed and the new ones written in the same transaction.
    Returns None when the evaluation does not exist.
    """
    try:
        result = await session.execute(select(StudentEvaluation).filter(StudentEvaluation.id == evaluation_id))
        evaluation = result.scalar_one_or_none()
        if not evaluation:
            return None

        _apply_record(evaluation, record)
        await session.execute(delete(EvaluationItemScore).where(EvaluationItemScore.evaluation_id == evaluation_id))

        for item in items:
            session.add(EvaluationItemScore(
                evaluation_id=evaluation_id,
                criterion_id=item.criterion_id,
                score=item.value
            ))

        await session.commit()
        logger.info(f"Replaced evaluation {evaluation_id} with {len(items)} item scores")
        return evaluation_id
    except Exception as e:
        logger.error(f"Error replacing evaluation {evaluation_id}: {e}")
        await session.rollback()
        raise


async def delete_evaluation(session: AsyncSession, evaluation_id: int) -> bool:
    try:
        result = await session.execute(select(StudentEvaluation).filter(StudentEvaluation.id == evaluation_id))
        evaluation = result.scalar_one_or_none()
        if not evaluation:
            return False

        # Item scores go with it, on databases without ON DELETE CASCADE too
        await session.execute(delete(EvaluationItemScore).where(EvaluationItemScore.evaluation_id == evaluation_id))
        await session.delete(evaluation)
        await session.commit()
        logger.info(f"Deleted evaluation {evaluation_id}")
        return True
    except Exception as e:
        logger.error(f"Error deleting evaluation {evaluation_id}: {e}")
        await session.rollback()
        raise
