from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from pydantic import BaseModel, EmailStr
from ..core.database import get_db
from ..core.auth import require_roles
from ..models.user import User, STAFF_ROLES
from ..models.student import Student
from ..models.course import CourseStudent
from ..models.evaluation import StudentEvaluation
from ..utils.scoring import external_tests_passing
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class StudentCreate(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    unit_id: Optional[str] = None


class StudentResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    unit_id: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StudentCourse(BaseModel):
    id: int
    name: str
    course_type: str
    start_date: date
    end_date: date


class StudentEvaluationSummary(BaseModel):
    id: int
    subject_id: int
    subject_name: str
    evaluation_type: str
    evaluation_date: date
    percentage_score: float
    is_passing: bool
    has_critical_fail: bool


class StudentDetail(StudentResponse):
    courses: List[StudentCourse] = []
    evaluations: List[StudentEvaluationSummary] = []
    external_tests: Optional[dict] = None
    skills: Optional[dict] = None


async def _get_student_or_404(db: AsyncSession, student_id: int) -> Student:
    result = await db.execute(select(Student).filter(Student.id == student_id))
    student = result.scalar_one_or_none()
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")
    return student


@router.get("", response_model=List[StudentResponse])
async def get_students(db: AsyncSession = Depends(get_db),
                       current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        result = await db.execute(select(Student).order_by(Student.last_name, Student.first_name))
        return result.scalars().all()
    except Exception as e:
        logger.error(f"Error getting students: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving students")


@router.get("/{student_id}", response_model=StudentDetail)
async def get_student(student_id: int, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(require_roles(*STAFF_ROLES))):
    try:
        result = await db.execute(
            select(Student)
            .options(
                selectinload(Student.enrollments).selectinload(CourseStudent.course),
                selectinload(Student.evaluations).selectinload(StudentEvaluation.subject),
                selectinload(Student.external_test),
                selectinload(Student.skills)
            )
            .filter(Student.id == student_id)
        )
        student = result.scalar_one_or_none()
        if not student:
            raise HTTPException(status_code=404, detail="Student not found")

        external = None
        if student.external_test:
            external = {
                **student.external_test.scores(),
                "average_score": student.external_test.average_score,
                "is_passing": external_tests_passing(student.external_test.average_score)
            }

        skills = None
        if student.skills:
            skills = {
                "meters_30": student.skills.meters_30,
                "meters_40": student.skills.meters_40,
                "guidance": student.skills.guidance
            }

        evaluations = sorted(student.evaluations, key=lambda e: (e.evaluation_date, e.id), reverse=True)

        return StudentDetail(
            **StudentResponse.model_validate(student).model_dump(),
            courses=[
                StudentCourse(
                    id=e.course.id,
                    name=e.course.name,
                    course_type=e.course.course_type,
                    start_date=e.course.start_date,
                    end_date=e.course.end_date
                )
                for e in student.enrollments
            ],
            evaluations=[
                StudentEvaluationSummary(
                    id=e.id,
                    subject_id=e.subject_id,
                    subject_name=e.subject.name_he,
                    evaluation_type=e.evaluation_type,
                    evaluation_date=e.evaluation_date,
                    percentage_score=e.percentage_score,
                    is_passing=e.is_passing,
                    has_critical_fail=e.has_critical_fail
                )
                for e in evaluations
            ],
            external_tests=external,
            skills=skills
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting student {student_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving student")


@router.post("", response_model=StudentResponse, status_code=201)
async def create_student(student: StudentCreate, db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        email = student.email.lower()
        existing = await db.execute(select(Student).filter(Student.email == email))
        if existing.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="A student with this email already exists")

        db_student = Student(
            first_name=student.first_name,
            last_name=student.last_name,
            email=email,
            phone=student.phone,
            unit_id=student.unit_id
        )
        db.add(db_student)
        await db.commit()
        await db.refresh(db_student)

        logger.info(f"Student created: {db_student.email}")
        return db_student
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating student: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating student")


@router.put("/{student_id}", response_model=StudentResponse)
async def update_student(student_id: int, student: StudentCreate, db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        db_student = await _get_student_or_404(db, student_id)

        email = student.email.lower()
        if email != db_student.email:
            existing = await db.execute(select(Student).filter(Student.email == email))
            if existing.scalar_one_or_none():
                raise HTTPException(status_code=400, detail="A student with this email already exists")

        db_student.first_name = student.first_name
        db_student.last_name = student.last_name
        db_student.email = email
        db_student.phone = student.phone
        db_student.unit_id = student.unit_id
        await db.commit()
        await db.refresh(db_student)
        return db_student
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating student {student_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating student")


@router.delete("/{student_id}")
async def delete_student(student_id: int, db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        db_student = await _get_student_or_404(db, student_id)
        await db.delete(db_student)
        await db.commit()

        logger.info(f"Student {student_id} deleted by {current_user.email}")
        return {"message": "Student deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting student {student_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting student")
