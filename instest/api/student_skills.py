from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from pydantic import BaseModel
from ..core.database import get_db
from ..core.auth import require_roles
from ..models.user import User, STAFF_ROLES
from ..models.student import Student
from ..models.student_skills import StudentSkills
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class SkillsInput(BaseModel):
    meters_30: bool = False
    meters_40: bool = False
    guidance: bool = False


class SkillsResponse(SkillsInput):
    id: int
    student_id: int
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


async def _load_for_student(db: AsyncSession, student_id: int) -> Optional[StudentSkills]:
    result = await db.execute(
        select(StudentSkills)
        .filter(StudentSkills.student_id == student_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@router.get("", response_model=List[SkillsResponse])
async def get_all_skills(db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        result = await db.execute(select(StudentSkills).order_by(StudentSkills.student_id))
        return result.scalars().all()
    except Exception as e:
        logger.error(f"Error getting student skills: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving student skills")


@router.get("/{student_id}", response_model=SkillsResponse)
async def get_student_skills(student_id: int, db: AsyncSession = Depends(get_db),
                             current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        skills = await _load_for_student(db, student_id)
        if not skills:
            raise HTTPException(status_code=404, detail="No skills recorded for this student")
        return skills
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting skills for student {student_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving student skills")


@router.put("/{student_id}", response_model=SkillsResponse)
async def upsert_student_skills(student_id: int, skills: SkillsInput, db: AsyncSession = Depends(get_db),
                                current_user: User = Depends(require_roles("admin", "madar", "instructor"))):
    try:
        student = await db.execute(select(Student.id).filter(Student.id == student_id))
        if student.scalar_one_or_none() is None:
            raise HTTPException(status_code=404, detail="Student not found")

        db_skills = await _load_for_student(db, student_id)
        if db_skills is None:
            db_skills = StudentSkills(student_id=student_id)
            db.add(db_skills)

        db_skills.meters_30 = skills.meters_30
        db_skills.meters_40 = skills.meters_40
        db_skills.guidance = skills.guidance
        await db.commit()

        return await _load_for_student(db, student_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error saving skills for student {student_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error saving student skills")
