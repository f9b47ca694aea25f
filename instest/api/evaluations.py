from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload, joinedload
from pydantic import BaseModel
from ..core.config import settings
from ..core.database import get_db
from ..core.auth import require_roles
from ..models.user import User, STAFF_ROLES
from ..models.student import Student
from ..models.instructor import Instructor
from ..models.criteria import EvaluationSubject
from ..models.evaluation import StudentEvaluation, EvaluationItemScore
from ..services.catalog import load_catalog_snapshot
from ..services.evaluation_builder import build_evaluation, EvaluationType
from ..services.evaluation_store import create_evaluation, replace_evaluation, delete_evaluation
from ..utils.scoring import ValidationError, score_label, score_color, status_text
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


# Request/Response Models
class CriterionResponse(BaseModel):
    id: int
    name_he: str
    description_he: Optional[str] = None
    display_order: int
    max_score: int
    is_critical: bool

    class Config:
        from_attributes = True


class SubjectResponse(BaseModel):
    id: int
    code: str
    name_he: str
    description_he: Optional[str] = None
    max_raw_score: int
    passing_raw_score: int
    display_order: int
    criteria: List[CriterionResponse] = []

    class Config:
        from_attributes = True


class ItemScoreInput(BaseModel):
    criterion_id: int
    score: int


class EvaluationCreate(BaseModel):
    student_id: int
    subject_id: int
    instructor_id: Optional[int] = None
    evaluation_type: EvaluationType = EvaluationType.PRACTICE
    course_name: Optional[str] = None
    lesson_name: Optional[str] = None
    evaluation_date: date
    notes: Optional[str] = None
    item_scores: List[ItemScoreInput]


class ItemScoreResponse(BaseModel):
    criterion_id: int
    criterion_name: str
    display_order: int
    is_critical: bool
    max_score: int
    score: int
    score_label: str
    score_color: str


class EvaluationResponse(BaseModel):
    id: int
    student_id: int
    student_name: str
    subject_id: int
    subject_code: str
    subject_name: str
    instructor_id: Optional[int] = None
    instructor_name: Optional[str] = None
    evaluation_type: str
    course_name: Optional[str] = None
    lesson_name: Optional[str] = None
    evaluation_date: date
    raw_score: int
    max_raw_score: int
    passing_raw_score: int
    percentage_score: float
    final_score: float
    is_passing: bool
    has_critical_fail: bool
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    item_scores: List[ItemScoreResponse] = []


def _evaluation_query():
    return select(StudentEvaluation).options(
        joinedload(StudentEvaluation.student),
        joinedload(StudentEvaluation.subject),
        joinedload(StudentEvaluation.instructor),
        selectinload(StudentEvaluation.item_scores).joinedload(EvaluationItemScore.criterion)
    )


def _evaluation_response(evaluation: StudentEvaluation) -> EvaluationResponse:
    items = sorted(evaluation.item_scores, key=lambda i: (i.criterion.display_order, i.criterion_id))
    return EvaluationResponse(
        id=evaluation.id,
        student_id=evaluation.student_id,
        student_name=evaluation.student.full_name,
        subject_id=evaluation.subject_id,
        subject_code=evaluation.subject.code,
        subject_name=evaluation.subject.name_he,
        instructor_id=evaluation.instructor_id,
        instructor_name=evaluation.instructor.full_name if evaluation.instructor else None,
        evaluation_type=evaluation.evaluation_type,
        course_name=evaluation.course_name,
        lesson_name=evaluation.lesson_name,
        evaluation_date=evaluation.evaluation_date,
        raw_score=evaluation.raw_score,
        max_raw_score=evaluation.subject.max_raw_score,
        passing_raw_score=evaluation.subject.passing_raw_score,
        percentage_score=evaluation.percentage_score,
        final_score=evaluation.final_score,
        is_passing=evaluation.is_passing,
        has_critical_fail=evaluation.has_critical_fail,
        status=status_text(evaluation.is_passing, evaluation.has_critical_fail),
        notes=evaluation.notes,
        created_at=evaluation.created_at,
        updated_at=evaluation.updated_at,
        item_scores=[
            ItemScoreResponse(
                criterion_id=item.criterion_id,
                criterion_name=item.criterion.name_he,
                display_order=item.criterion.display_order,
                is_critical=item.criterion.is_critical,
                max_score=item.criterion.max_score,
                score=item.score,
                score_label=score_label(item.score),
                score_color=score_color(item.score)
            )
            for item in items
        ]
    )


async def _load_evaluation(db: AsyncSession, evaluation_id: int) -> Optional[StudentEvaluation]:
    result = await db.execute(
        _evaluation_query()
        .filter(StudentEvaluation.id == evaluation_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _build_from_request(db: AsyncSession, evaluation: EvaluationCreate):
    """Check references and run the scoring; HTTP errors for anything invalid"""
    student = await db.execute(select(Student.id).filter(Student.id == evaluation.student_id))
    if student.scalar_one_or_none() is None:
        raise HTTPException(status_code=400, detail="Student not found")

    if evaluation.instructor_id is not None:
        instructor = await db.execute(select(Instructor.id).filter(Instructor.id == evaluation.instructor_id))
        if instructor.scalar_one_or_none() is None:
            raise HTTPException(status_code=400, detail="Instructor not found")

    require_instructor = (
        evaluation.evaluation_type == EvaluationType.TEST and settings.require_instructor_for_tests
    )

    try:
        snapshot = await load_catalog_snapshot(db, subject_id=evaluation.subject_id)
        if snapshot is None:
            raise HTTPException(status_code=400, detail="Evaluation subject not found")

        return build_evaluation(
            snapshot,
            student_id=evaluation.student_id,
            instructor_id=evaluation.instructor_id,
            lesson_name=evaluation.lesson_name,
            evaluation_date=evaluation.evaluation_date,
            item_scores=[(item.criterion_id, item.score) for item in evaluation.item_scores],
            course_name=evaluation.course_name,
            notes=evaluation.notes,
            evaluation_type=evaluation.evaluation_type,
            require_instructor=require_instructor
        )
    except ValidationError as e:
        logger.warning(f"Rejected evaluation for student {evaluation.student_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))


# Evaluation subjects
@router.get("/evaluation-subjects", response_model=List[SubjectResponse])
async def get_subjects(db: AsyncSession = Depends(get_db),
                       current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        result = await db.execute(
            select(EvaluationSubject)
            .options(selectinload(EvaluationSubject.criteria))
            .order_by(EvaluationSubject.display_order, EvaluationSubject.id)
        )
        return result.scalars().all()
    except Exception as e:
        logger.error(f"Error getting evaluation subjects: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving evaluation subjects")


@router.get("/evaluation-subjects/{code}", response_model=SubjectResponse)
async def get_subject(code: str, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        result = await db.execute(
            select(EvaluationSubject)
            .options(selectinload(EvaluationSubject.criteria))
            .filter(EvaluationSubject.code == code)
        )
        subject = result.scalar_one_or_none()
        if not subject:
            raise HTTPException(status_code=404, detail="Evaluation subject not found")
        return subject
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting evaluation subject {code}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving evaluation subject")


# Evaluations
@router.get("/evaluations", response_model=List[EvaluationResponse])
async def get_evaluations(student_id: Optional[int] = None, subject_id: Optional[int] = None,
                          instructor_id: Optional[int] = None, evaluation_type: Optional[EvaluationType] = None,
                          db: AsyncSession = Depends(get_db),
                          current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        query = _evaluation_query()
        if student_id is not None:
            query = query.filter(StudentEvaluation.student_id == student_id)
        if subject_id is not None:
            query = query.filter(StudentEvaluation.subject_id == subject_id)
        if instructor_id is not None:
            query = query.filter(StudentEvaluation.instructor_id == instructor_id)
        if evaluation_type is not None:
            query = query.filter(StudentEvaluation.evaluation_type == evaluation_type.value)

        result = await db.execute(
            query.order_by(StudentEvaluation.evaluation_date.desc(), StudentEvaluation.id.desc())
        )
        return [_evaluation_response(e) for e in result.unique().scalars().all()]
    except Exception as e:
        logger.error(f"Error getting evaluations: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving evaluations")


@router.get("/evaluations/{evaluation_id}", response_model=EvaluationResponse)
async def get_evaluation(evaluation_id: int, db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        evaluation = await _load_evaluation(db, evaluation_id)
        if not evaluation:
            raise HTTPException(status_code=404, detail="Evaluation not found")
        return _evaluation_response(evaluation)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting evaluation {evaluation_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving evaluation")


@router.post("/evaluations", response_model=EvaluationResponse, status_code=201)
async def create_evaluation_route(evaluation: EvaluationCreate, db: AsyncSession = Depends(get_db),
                                  current_user: User = Depends(require_roles(*STAFF_ROLES))):
    """
    Store an evaluation. Scores, percentage and verdict are always computed
    here from the submitted item scores.
    """
    try:
        record, items = await _build_from_request(db, evaluation)
        evaluation_id = await create_evaluation(db, record, items)

        logger.info(f"Evaluation {evaluation_id} created by {current_user.email}")
        return _evaluation_response(await _load_evaluation(db, evaluation_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating evaluation: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating evaluation")


@router.put("/evaluations/{evaluation_id}", response_model=EvaluationResponse)
async def update_evaluation(evaluation_id: int, evaluation: EvaluationCreate, db: AsyncSession = Depends(get_db),
                            current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        existing = await db.execute(select(StudentEvaluation.id).filter(StudentEvaluation.id == evaluation_id))
        if existing.scalar_one_or_none() is None:
            raise HTTPException(status_code=404, detail="Evaluation not found")

        record, items = await _build_from_request(db, evaluation)
        await replace_evaluation(db, evaluation_id, record, items)

        logger.info(f"Evaluation {evaluation_id} updated by {current_user.email}")
        return _evaluation_response(await _load_evaluation(db, evaluation_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating evaluation {evaluation_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating evaluation")


@router.delete("/evaluations/{evaluation_id}")
async def delete_evaluation_route(evaluation_id: int, db: AsyncSession = Depends(get_db),
                                  current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        deleted = await delete_evaluation(db, evaluation_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Evaluation not found")
        return {"message": "Evaluation deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting evaluation {evaluation_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting evaluation")
