from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from pydantic import BaseModel, EmailStr
from ..core.database import get_db
from ..core.auth import get_password_hash, require_roles, can_manage_role
from ..models.user import User, ROLES, STAFF_ROLES
from ..models.student import Student
from ..models.instructor import Instructor
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

MIN_PASSWORD_LENGTH = 6
INSTRUCTOR_NUMBER_RANGE = (1, 100000)


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    first_name: str
    last_name: str
    role: str = "student"
    is_active: bool = True
    instructor_number: Optional[int] = None


class UserUpdate(BaseModel):
    email: EmailStr
    first_name: str
    last_name: str
    role: str
    is_active: bool = True
    password: Optional[str] = None
    instructor_number: Optional[int] = None


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    is_active: bool
    instructor_number: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def _validate_role(role: str):
    if role not in ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")


def _check_can_manage(manager: User, role: str):
    if manager.role != "admin" and not can_manage_role(manager.role, role):
        raise HTTPException(status_code=403, detail=f"Cannot manage users with role '{role}'")


async def _validate_instructor_number(db: AsyncSession, number: Optional[int], user_id: Optional[int] = None):
    if number is None:
        return

    low, high = INSTRUCTOR_NUMBER_RANGE
    if number < low or number > high:
        raise HTTPException(status_code=400, detail=f"Instructor number must be between {low} and {high}")

    query = select(User).filter(User.instructor_number == number)
    if user_id is not None:
        query = query.filter(User.id != user_id)
    existing = await db.execute(query)
    other = existing.scalar_one_or_none()
    if other:
        raise HTTPException(
            status_code=400,
            detail=f"Instructor number {number} already belongs to {other.first_name} {other.last_name}"
        )


async def _sync_person(db: AsyncSession, model, email: str, first_name: str, last_name: str,
                       old_email: Optional[str] = None):
    """Insert or update the students/instructors row that mirrors a user"""
    lookup = old_email or email
    result = await db.execute(select(model).filter(model.email == lookup))
    person = result.scalar_one_or_none()

    if person is None and old_email and old_email != email:
        result = await db.execute(select(model).filter(model.email == email))
        person = result.scalar_one_or_none()

    if person is None:
        db.add(model(first_name=first_name, last_name=last_name, email=email))
    else:
        person.first_name = first_name
        person.last_name = last_name
        person.email = email


@router.get("", response_model=List[UserResponse])
async def get_users(db: AsyncSession = Depends(get_db),
                    current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
        return result.scalars().all()
    except Exception as e:
        logger.error(f"Error getting users: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving users")


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db),
                   current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        result = await db.execute(select(User).filter(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return user
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving user")


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(user: UserCreate, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        if len(user.password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        _validate_role(user.role)
        _check_can_manage(current_user, user.role)
        await _validate_instructor_number(db, user.instructor_number)

        email = user.email.lower()
        existing = await db.execute(select(User).filter(User.email == email))
        if existing.scalar_one_or_none():
            raise HTTPException(status_code=400, detail="A user with this email already exists")

        db_user = User(
            email=email,
            password_hash=get_password_hash(user.password),
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_active=user.is_active,
            instructor_number=user.instructor_number
        )
        db.add(db_user)

        if user.role == "student":
            await _sync_person(db, Student, email, user.first_name, user.last_name)
        else:
            await _sync_person(db, Instructor, email, user.first_name, user.last_name)

        await db.commit()
        await db.refresh(db_user)

        logger.info(f"User {db_user.email} created with role {db_user.role} by {current_user.email}")
        return db_user
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating user: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating user")


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: int, user: UserUpdate, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        if user_id == current_user.id and not user.is_active:
            raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
        if user_id == current_user.id and user.role != current_user.role:
            raise HTTPException(status_code=400, detail="You cannot change your own role")

        _validate_role(user.role)
        await _validate_instructor_number(db, user.instructor_number, user_id)

        result = await db.execute(select(User).filter(User.id == user_id))
        db_user = result.scalar_one_or_none()
        if not db_user:
            raise HTTPException(status_code=404, detail="User not found")

        if user_id != current_user.id:
            _check_can_manage(current_user, db_user.role)
            _check_can_manage(current_user, user.role)

        email = user.email.lower()
        if email != db_user.email:
            existing = await db.execute(select(User).filter(User.email == email))
            if existing.scalar_one_or_none():
                raise HTTPException(status_code=400, detail="A user with this email already exists")

        if user.password:
            if len(user.password) < MIN_PASSWORD_LENGTH:
                raise HTTPException(status_code=400,
                                    detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
            db_user.password_hash = get_password_hash(user.password)

        old_email = db_user.email
        old_role = db_user.role

        db_user.email = email
        db_user.first_name = user.first_name
        db_user.last_name = user.last_name
        db_user.role = user.role
        db_user.is_active = user.is_active
        db_user.instructor_number = user.instructor_number

        if user.role == "student":
            await _sync_person(db, Student, email, user.first_name, user.last_name, old_email)
            if old_role in STAFF_ROLES:
                await db.execute(delete(Instructor).where(Instructor.email == old_email))
        else:
            await _sync_person(db, Instructor, email, user.first_name, user.last_name, old_email)
            if old_role == "student":
                await db.execute(delete(Student).where(Student.email == old_email))

        await db.commit()

        result = await db.execute(
            select(User).filter(User.id == user_id).execution_options(populate_existing=True)
        )
        db_user = result.scalar_one()
        logger.info(f"User {user_id} updated by {current_user.email}")
        return db_user
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating user {user_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating user")


@router.delete("/{user_id}")
async def delete_user(user_id: int, db: AsyncSession = Depends(get_db),
                      current_user: User = Depends(require_roles("admin", "madar"))):
    try:
        if user_id == current_user.id:
            raise HTTPException(status_code=400, detail="You cannot delete your own account")

        result = await db.execute(select(User).filter(User.id == user_id))
        db_user = result.scalar_one_or_none()
        if not db_user:
            raise HTTPException(status_code=404, detail="User not found")

        _check_can_manage(current_user, db_user.role)

        if db_user.role == "student":
            await db.execute(delete(Student).where(Student.email == db_user.email))
        else:
            await db.execute(delete(Instructor).where(Instructor.email == db_user.email))

        await db.delete(db_user)
        await db.commit()

        logger.info(f"User {user_id} deleted by {current_user.email}")
        return {"message": "User deleted"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting user {user_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting user")
