from datetime import datetime, timedelta
from typing import Optional
import secrets
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from pydantic import BaseModel, EmailStr
from ..core.config import settings
from ..core.database import get_db
from ..core.auth import verify_password, create_access_token, get_password_hash, get_current_user
from ..models.user import User
from ..models.instructor import Instructor
from ..models.password_reset_token import PasswordResetToken
from ..services.email import send_password_reset_email
import logging

logger = logging.getLogger(__name__)
router = APIRouter()

MIN_PASSWORD_LENGTH = 6
FORGOT_PASSWORD_MESSAGE = "If the email exists in the system, a password reset link has been sent"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserInfo(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    instructor_number: Optional[int] = None

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    access_token: str
    token_type: str
    user: UserInfo


class RegisterAdminRequest(BaseModel):
    first_name: str
    last_name: str
    email: EmailStr
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


def _check_password_length(password: str):
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


def _login_response(user: User) -> LoginResponse:
    token = create_access_token(data={"sub": user.id, "email": user.email, "role": user.role})
    return LoginResponse(access_token=token, token_type="bearer", user=UserInfo.model_validate(user))


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Authenticate a user and return an access token
    """
    try:
        logger.info(f"Login attempt for email: {request.email}")

        result = await db.execute(select(User).filter(User.email == request.email.lower()))
        user = result.scalar_one_or_none()

        if not user:
            logger.warning(f"Failed login attempt for email: {request.email}")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

        if not user.is_active:
            logger.warning(f"Login attempt for inactive account: {user.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is not active, contact the system administrator"
            )

        if not verify_password(request.password, user.password_hash):
            logger.warning(f"Failed login attempt for email: {request.email}")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

        logger.info(f"Login successful: {user.email} ({user.role})")
        return _login_response(user)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error for {request.email}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication failed"
        )


@router.post("/register-admin", response_model=LoginResponse)
async def register_admin(request: RegisterAdminRequest, db: AsyncSession = Depends(get_db)):
    """
    Register the first admin user (only if no admins exist)
    """
    try:
        logger.info(f"Admin registration attempt for email: {request.email}")
        _check_password_length(request.password)

        existing_admin = await db.execute(select(User.id).filter(User.role == "admin").limit(1))
        if existing_admin.scalar_one_or_none():
            logger.warning("Admin registration attempted but admin already exists")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Admin user already exists")

        email = request.email.lower()
        existing_user = await db.execute(select(User).filter(User.email == email))
        if existing_user.scalar_one_or_none():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

        new_admin = User(
            email=email,
            password_hash=get_password_hash(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
            role="admin",
            is_active=True
        )
        db.add(new_admin)

        existing_instructor = await db.execute(select(Instructor).filter(Instructor.email == email))
        if not existing_instructor.scalar_one_or_none():
            db.add(Instructor(first_name=request.first_name, last_name=request.last_name, email=email))

        await db.commit()
        await db.refresh(new_admin)

        logger.info(f"Admin registered successfully: {new_admin.email}")
        return _login_response(new_admin)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Admin registration error for {request.email}: {e}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed"
        )


@router.get("/check-admin-exists")
async def check_admin_exists(db: AsyncSession = Depends(get_db)):
    try:
        result = await db.execute(select(User.id).filter(User.role == "admin").limit(1))
        return {"admin_exists": result.scalar_one_or_none() is not None}
    except Exception as e:
        logger.error(f"Error checking admin existence: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Could not check admin status"
        )


@router.post("/logout")
async def logout():
    """
    Logout endpoint (client-side token removal)
    """
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserInfo)
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/change-password")
async def change_password(request: ChangePasswordRequest, db: AsyncSession = Depends(get_db),
                          current_user: User = Depends(get_current_user)):
    try:
        _check_password_length(request.new_password)

        if not verify_password(request.current_password, current_user.password_hash):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Current password is incorrect")

        current_user.password_hash = get_password_hash(request.new_password)
        await db.commit()

        logger.info(f"Password changed for user {current_user.id}")
        return {"message": "Password changed successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error changing password for user {current_user.id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error changing password")


@router.post("/forgot-password")
async def forgot_password(request: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    """
    Start a password reset. The answer is the same whether or not the email
    belongs to an account.
    """
    try:
        result = await db.execute(
            select(User).filter(User.email == request.email.lower(), User.is_active == True)
        )
        user = result.scalar_one_or_none()
        if not user:
            logger.info(f"Password reset requested for unknown email: {request.email}")
            return {"message": FORGOT_PASSWORD_MESSAGE}

        await db.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.user_id == user.id, PasswordResetToken.used == False)
            .values(used=True)
        )

        token = secrets.token_hex(32)
        db.add(PasswordResetToken(
            user_id=user.id,
            token=token,
            expires_at=datetime.utcnow() + timedelta(minutes=settings.password_reset_expire_minutes)
        ))
        await db.commit()

        await send_password_reset_email(user.email, token, user.first_name)
        return {"message": FORGOT_PASSWORD_MESSAGE}

    except Exception as e:
        logger.error(f"Forgot password error for {request.email}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error sending reset link")


@router.post("/reset-password")
async def reset_password(request: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    try:
        _check_password_length(request.new_password)

        result = await db.execute(
            select(PasswordResetToken).filter(
                PasswordResetToken.token == request.token,
                PasswordResetToken.used == False,
                PasswordResetToken.expires_at > datetime.utcnow()
            )
        )
        reset_token = result.scalar_one_or_none()
        if not reset_token:
            raise HTTPException(status_code=400, detail="Reset link is invalid or has expired")

        user_result = await db.execute(select(User).filter(User.id == reset_token.user_id))
        user = user_result.scalar_one()
        user.password_hash = get_password_hash(request.new_password)
        reset_token.used = True
        await db.commit()

        logger.info(f"Password reset for user {user.id}")
        return {"message": "Password reset successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Reset password error: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error resetting password")
