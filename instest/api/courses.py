from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from sqlalchemy.orm import selectinload
from pydantic import BaseModel
from ..core.database import get_db
from ..core.auth import require_roles
from ..models.user import User
from ..models.course import Course, CourseStudent, CourseInstructor, COURSE_TYPE_LABELS
from ..models.student import Student
from ..models.instructor import Instructor
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

COURSE_READ_ROLES = ("admin", "madar", "instructor", "tester")


class CourseCreate(BaseModel):
    name: str
    course_type: str
    start_date: date
    end_date: date
    description: Optional[str] = None
    is_active: bool = True
    student_ids: Optional[List[int]] = None
    instructor_ids: Optional[List[int]] = None


class PersonBrief(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: Optional[str] = None


class CourseResponse(BaseModel):
    id: int
    name: str
    course_type: str
    course_type_label: str
    start_date: date
    end_date: date
    description: Optional[str] = None
    is_active: bool
    student_count: int = 0
    instructors: List[PersonBrief] = []
    created_at: Optional[datetime] = None


class CourseDetail(CourseResponse):
    students: List[PersonBrief] = []


def _course_query():
    return select(Course).options(
        selectinload(Course.students).selectinload(CourseStudent.student),
        selectinload(Course.instructors).selectinload(CourseInstructor.instructor)
    )


def _brief(person) -> PersonBrief:
    return PersonBrief(id=person.id, first_name=person.first_name, last_name=person.last_name, email=person.email)


def _course_response(course: Course, detail: bool = False):
    data = dict(
        id=course.id,
        name=course.name,
        course_type=course.course_type,
        course_type_label=course.course_type_label,
        start_date=course.start_date,
        end_date=course.end_date,
        description=course.description,
        is_active=course.is_active,
        student_count=len(course.students),
        instructors=[_brief(ci.instructor) for ci in course.instructors],
        created_at=course.created_at
    )
    if not detail:
        return CourseResponse(**data)

    students = sorted((cs.student for cs in course.students), key=lambda s: (s.last_name, s.first_name))
    return CourseDetail(**data, students=[_brief(s) for s in students])


async def _instructor_for_user(db: AsyncSession, user: User) -> Optional[Instructor]:
    result = await db.execute(select(Instructor).filter(Instructor.email == user.email))
    return result.scalar_one_or_none()


async def _load_course(db: AsyncSession, course_id: int) -> Optional[Course]:
    result = await db.execute(
        _course_query().filter(Course.id == course_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _validate_course(course: CourseCreate):
    if course.course_type not in COURSE_TYPE_LABELS:
        raise HTTPException(status_code=400, detail="Invalid course type")
    if course.end_date < course.start_date:
        raise HTTPException(status_code=400, detail="End date cannot be before start date")


async def _check_ids_exist(db: AsyncSession, model, ids: List[int], label: str):
    if not ids:
        return
    result = await db.execute(select(model.id).filter(model.id.in_(ids)))
    found = set(result.scalars().all())
    missing = sorted(set(ids) - found)
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown {label} ids: {missing}")


async def _replace_members(db: AsyncSession, course_id: int, course: CourseCreate):
    if course.student_ids is not None:
        await _check_ids_exist(db, Student, course.student_ids, "student")
        await db.execute(delete(CourseStudent).where(CourseStudent.course_id == course_id))
        for student_id in dict.fromkeys(course.student_ids):
            db.add(CourseStudent(course_id=course_id, student_id=student_id))

    if course.instructor_ids is not None:
        await _check_ids_exist(db, Instructor, course.instructor_ids, "instructor")
        await db.execute(delete(CourseInstructor).where(CourseInstructor.course_id == course_id))
        for instructor_id in dict.fromkeys(course.instructor_ids):
            db.add(CourseInstructor(course_id=course_id, instructor_id=instructor_id))


@router.get("", response_model=List[CourseResponse])
async def get_courses(is_active: Optional[bool] = None, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(require_roles(*COURSE_READ_ROLES))):
    """
    List courses. Instructors only see the courses they are assigned to.
    """
    try:
        query = _course_query()

        if current_user.role == "instructor":
            instructor = await _instructor_for_user(db, current_user)
            if not instructor:
                return []
            query = query.filter(
                Course.id.in_(select(CourseInstructor.course_id).filter(CourseInstructor.instructor_id == instructor.id))
            )

        if is_active is not None:
            query = query.filter(Course.is_active == is_active)

        result = await db.execute(query.order_by(Course.start_date.desc(), Course.id.desc()))
        return [_course_response(course) for course in result.scalars().all()]
    except Exception as e:
        logger.error(f"Error getting courses: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving courses")


@router.get("/{course_id}", response_model=CourseDetail)
async def get_course(course_id: int, db: AsyncSession = Depends(get_db),
                     current_user: User = Depends(require_roles(*COURSE_READ_ROLES))):
    try:
        if current_user.role == "instructor":
            instructor = await _instructor_for_user(db, current_user)
            if not instructor:
                raise HTTPException(status_code=403, detail="Access denied")
            access = await db.execute(
                select(CourseInstructor.id).filter(
                    CourseInstructor.course_id == course_id,
                    CourseInstructor.instructor_id == instructor.id
                )
            )
            if access.scalar_one_or_none() is None:
                raise HTTPException(status_code=403, detail="Access denied - not assigned to this course")

        course = await _load_course(db, course_id)
        if not course:
            raise HTTPException(status_code=404, detail="Course not found")
        return _course_response(course, detail=True)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting course {course_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving course")


@router.post("", response_model=CourseDetail, status_code=201)
async def create_course(course: CourseCreate, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        _validate_course(course)

        db_course = Course(
            name=course.name,
            course_type=course.course_type,
            start_date=course.start_date,
            end_date=course.end_date,
            description=course.description,
            is_active=course.is_active
        )
        db.add(db_course)
        await db.flush()

        await _replace_members(db, db_course.id, course)
        await db.commit()

        logger.info(f"Course {db_course.id} '{db_course.name}' created by {current_user.email}")
        return _course_response(await _load_course(db, db_course.id), detail=True)
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        logger.error(f"Error creating course: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating course")


@router.put("/{course_id}", response_model=CourseDetail)
async def update_course(course_id: int, course: CourseCreate, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        _validate_course(course)

        result = await db.execute(select(Course).filter(Course.id == course_id))
        db_course = result.scalar_one_or_none()
        if not db_course:
            raise HTTPException(status_code=404, detail="Course not found")

        db_course.name = course.name
        db_course.course_type = course.course_type
        db_course.start_date = course.start_date
        db_course.end_date = course.end_date
        db_course.description = course.description
        db_course.is_active = course.is_active

        await _replace_members(db, course_id, course)
        await db.commit()

        return _course_response(await _load_course(db, course_id), detail=True)
    except HTTPException:
        await db.rollback()
        raise
    except Exception as e:
        logger.error(f"Error updating course {course_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating course")


@router.delete("/{course_id}")
async def delete_course(course_id: int, db: AsyncSession = Depends(get_db),
                        current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        result = await db.execute(select(Course).filter(Course.id == course_id))
        db_course = result.scalar_one_or_none()
        if not db_course:
            raise HTTPException(status_code=404, detail="Course not found")

        await db.delete(db_course)
        await db.commit()
        return {"message": "Course deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting course {course_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting course")
