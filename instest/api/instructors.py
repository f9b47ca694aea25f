from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from pydantic import BaseModel, EmailStr
from ..core.database import get_db
from ..core.auth import require_roles
from ..models.user import User, STAFF_ROLES
from ..models.instructor import Instructor
from ..models.course import CourseInstructor
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class InstructorCreate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None


class InstructorResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InstructorDetail(InstructorResponse):
    courses: List[dict] = []


@router.get("", response_model=List[InstructorResponse])
async def get_instructors(db: AsyncSession = Depends(get_db),
                          current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        result = await db.execute(select(Instructor).order_by(Instructor.last_name, Instructor.first_name))
        return result.scalars().all()
    except Exception as e:
        logger.error(f"Error getting instructors: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving instructors")


@router.get("/{instructor_id}", response_model=InstructorDetail)
async def get_instructor(instructor_id: int, db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        result = await db.execute(
            select(Instructor)
            .options(selectinload(Instructor.assignments).selectinload(CourseInstructor.course))
            .filter(Instructor.id == instructor_id)
        )
        instructor = result.scalar_one_or_none()
        if not instructor:
            raise HTTPException(status_code=404, detail="Instructor not found")

        return InstructorDetail(
            **InstructorResponse.model_validate(instructor).model_dump(),
            courses=[
                {"id": a.course.id, "name": a.course.name, "course_type": a.course.course_type}
                for a in instructor.assignments
            ]
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting instructor {instructor_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving instructor")


@router.post("", response_model=InstructorResponse, status_code=201)
async def create_instructor(instructor: InstructorCreate, db: AsyncSession = Depends(get_db),
                            current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        email = instructor.email.lower()
        existing = await db.execute(select(Instructor).filter(Instructor.email == email))
        if existing.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="An instructor with this email already exists")

        db_instructor = Instructor(
            first_name=instructor.first_name,
            last_name=instructor.last_name,
            email=email,
            phone=instructor.phone
        )
        db.add(db_instructor)
        await db.commit()
        await db.refresh(db_instructor)

        logger.info(f"Instructor created: {db_instructor.email}")
        return db_instructor
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating instructor: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating instructor")


@router.put("/{instructor_id}", response_model=InstructorResponse)
async def update_instructor(instructor_id: int, instructor: InstructorCreate, db: AsyncSession = Depends(get_db),
                            current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        result = await db.execute(select(Instructor).filter(Instructor.id == instructor_id))
        db_instructor = result.scalar_one_or_none()
        if not db_instructor:
            raise HTTPException(status_code=404, detail="Instructor not found")

        email = instructor.email.lower()
        if email != db_instructor.email:
            existing = await db.execute(select(Instructor).filter(Instructor.email == email))
            if existing.scalar_one_or_none():
                raise HTTPException(status_code=400, detail="An instructor with this email already exists")

        db_instructor.first_name = instructor.first_name
        db_instructor.last_name = instructor.last_name
        db_instructor.email = email
        db_instructor.phone = instructor.phone
        await db.commit()
        await db.refresh(db_instructor)
        return db_instructor
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating instructor {instructor_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating instructor")


@router.delete("/{instructor_id}")
async def delete_instructor(instructor_id: int, db: AsyncSession = Depends(get_db),
                            current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        result = await db.execute(select(Instructor).filter(Instructor.id == instructor_id))
        db_instructor = result.scalar_one_or_none()
        if not db_instructor:
            raise HTTPException(status_code=404, detail="Instructor not found")

        await db.delete(db_instructor)
        await db.commit()
        return {"message": "Instructor deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting instructor {instructor_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting instructor")
