from datetime import date, datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import joinedload
from pydantic import BaseModel
from ..core.database import get_db
from ..core.auth import require_roles
from ..models.user import User
from ..models.absence import StudentAbsence
from ..models.student import Student
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class AbsenceCreate(BaseModel):
    student_id: int
    absence_date: date
    reason: Optional[str] = None
    is_excused: bool = False
    notes: Optional[str] = None


class AbsenceResponse(BaseModel):
    id: int
    student_id: int
    student_name: str
    absence_date: date
    reason: Optional[str] = None
    is_excused: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


def _absence_response(absence: StudentAbsence) -> AbsenceResponse:
    return AbsenceResponse(
        id=absence.id,
        student_id=absence.student_id,
        student_name=absence.student.full_name,
        absence_date=absence.absence_date,
        reason=absence.reason,
        is_excused=absence.is_excused,
        notes=absence.notes,
        created_at=absence.created_at
    )


async def _load_absence(db: AsyncSession, absence_id: int) -> Optional[StudentAbsence]:
    result = await db.execute(
        select(StudentAbsence)
        .options(joinedload(StudentAbsence.student))
        .filter(StudentAbsence.id == absence_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _check_student(db: AsyncSession, student_id: int):
    result = await db.execute(select(Student.id).filter(Student.id == student_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=400, detail="Student not found")


@router.get("", response_model=List[AbsenceResponse])
async def get_absences(student_id: Optional[int] = None, from_date: Optional[date] = None,
                       to_date: Optional[date] = None, db: AsyncSession = Depends(get_db),
                       current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        query = select(StudentAbsence).options(joinedload(StudentAbsence.student))
        if student_id is not None:
            query = query.filter(StudentAbsence.student_id == student_id)
        if from_date is not None:
            query = query.filter(StudentAbsence.absence_date >= from_date)
        if to_date is not None:
            query = query.filter(StudentAbsence.absence_date <= to_date)

        result = await db.execute(query.order_by(StudentAbsence.absence_date.desc(), StudentAbsence.id.desc()))
        return [_absence_response(absence) for absence in result.scalars().all()]
    except Exception as e:
        logger.error(f"Error getting absences: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving absences")


@router.get("/{absence_id}", response_model=AbsenceResponse)
async def get_absence(absence_id: int, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        absence = await _load_absence(db, absence_id)
        if not absence:
            raise HTTPException(status_code=404, detail="Absence not found")
        return _absence_response(absence)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting absence {absence_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving absence")


@router.post("", response_model=AbsenceResponse, status_code=201)
async def create_absence(absence: AbsenceCreate, db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        await _check_student(db, absence.student_id)

        db_absence = StudentAbsence(**absence.model_dump())
        db.add(db_absence)
        await db.commit()

        logger.info(f"Absence recorded for student {absence.student_id} on {absence.absence_date}")
        return _absence_response(await _load_absence(db, db_absence.id))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating absence: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating absence")


@router.put("/{absence_id}", response_model=AbsenceResponse)
async def update_absence(absence_id: int, absence: AbsenceCreate, db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        result = await db.execute(select(StudentAbsence).filter(StudentAbsence.id == absence_id))
        db_absence = result.scalar_one_or_none()
        if not db_absence:
            raise HTTPException(status_code=404, detail="Absence not found")

        await _check_student(db, absence.student_id)

        for field, value in absence.model_dump().items():
            setattr(db_absence, field, value)
        await db.commit()

        return _absence_response(await _load_absence(db, absence_id))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating absence {absence_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating absence")


@router.delete("/{absence_id}")
async def delete_absence(absence_id: int, db: AsyncSession = Depends(get_db),
                         current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        result = await db.execute(select(StudentAbsence).filter(StudentAbsence.id == absence_id))
        db_absence = result.scalar_one_or_none()
        if not db_absence:
            raise HTTPException(status_code=404, detail="Absence not found")

        await db.delete(db_absence)
        await db.commit()
        return {"message": "Absence deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting absence {absence_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting absence")
