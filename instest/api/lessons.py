from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import joinedload
from pydantic import BaseModel
from ..core.database import get_db
from ..core.auth import require_roles
from ..models.user import User
from ..models.lesson import Lesson
from ..models.criteria import EvaluationSubject
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

LESSON_READ_ROLES = ("admin", "madar", "instructor", "tester")


class LessonCreate(BaseModel):
    name: str
    subject_id: int
    description: Optional[str] = None
    display_order: int = 0
    is_active: bool = True


class LessonResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    display_order: int
    is_active: bool
    subject_id: Optional[int] = None
    subject_code: Optional[str] = None
    subject_name: Optional[str] = None
    created_at: Optional[datetime] = None


def _lesson_response(lesson: Lesson) -> LessonResponse:
    return LessonResponse(
        id=lesson.id,
        name=lesson.name,
        description=lesson.description,
        display_order=lesson.display_order,
        is_active=lesson.is_active,
        subject_id=lesson.subject_id,
        subject_code=lesson.subject.code if lesson.subject else None,
        subject_name=lesson.subject.name_he if lesson.subject else None,
        created_at=lesson.created_at
    )


async def _load_lesson(db: AsyncSession, lesson_id: int) -> Optional[Lesson]:
    result = await db.execute(
        select(Lesson)
        .options(joinedload(Lesson.subject))
        .filter(Lesson.id == lesson_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _check_subject(db: AsyncSession, subject_id: int):
    result = await db.execute(select(EvaluationSubject.id).filter(EvaluationSubject.id == subject_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=400, detail="Evaluation subject not found")


@router.get("", response_model=List[LessonResponse])
async def get_lessons(subject_id: Optional[int] = None, is_active: Optional[bool] = None,
                      db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(require_roles(*LESSON_READ_ROLES))):
    try:
        query = select(Lesson).options(joinedload(Lesson.subject))
        if subject_id is not None:
            query = query.filter(Lesson.subject_id == subject_id)
        if is_active is not None:
            query = query.filter(Lesson.is_active == is_active)

        result = await db.execute(query.order_by(Lesson.display_order, Lesson.id))
        return [_lesson_response(lesson) for lesson in result.scalars().all()]
    except Exception as e:
        logger.error(f"Error getting lessons: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving lessons")


@router.get("/{lesson_id}", response_model=LessonResponse)
async def get_lesson(lesson_id: int, db: AsyncSession = Depends(get_db),
                     current_user: User = Depends(require_roles(*LESSON_READ_ROLES))):
    try:
        lesson = await _load_lesson(db, lesson_id)
        if not lesson:
            raise HTTPException(status_code=404, detail="Lesson not found")
        return _lesson_response(lesson)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting lesson {lesson_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving lesson")


@router.post("", response_model=LessonResponse, status_code=201)
async def create_lesson(lesson: LessonCreate, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        await _check_subject(db, lesson.subject_id)

        db_lesson = Lesson(
            name=lesson.name,
            subject_id=lesson.subject_id,
            description=lesson.description,
            display_order=lesson.display_order,
            is_active=lesson.is_active
        )
        db.add(db_lesson)
        await db.commit()

        return _lesson_response(await _load_lesson(db, db_lesson.id))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating lesson: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating lesson")


@router.put("/{lesson_id}", response_model=LessonResponse)
async def update_lesson(lesson_id: int, lesson: LessonCreate, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        await _check_subject(db, lesson.subject_id)

        result = await db.execute(select(Lesson).filter(Lesson.id == lesson_id))
        db_lesson = result.scalar_one_or_none()
        if not db_lesson:
            raise HTTPException(status_code=404, detail="Lesson not found")

        db_lesson.name = lesson.name
        db_lesson.subject_id = lesson.subject_id
        db_lesson.description = lesson.description
        db_lesson.display_order = lesson.display_order
        db_lesson.is_active = lesson.is_active
        await db.commit()

        return _lesson_response(await _load_lesson(db, lesson_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating lesson {lesson_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating lesson")


@router.delete("/{lesson_id}")
async def delete_lesson(lesson_id: int, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        result = await db.execute(select(Lesson).filter(Lesson.id == lesson_id))
        db_lesson = result.scalar_one_or_none()
        if not db_lesson:
            raise HTTPException(status_code=404, detail="Lesson not found")

        await db.delete(db_lesson)
        await db.commit()
        return {"message": "Lesson deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting lesson {lesson_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting lesson")
