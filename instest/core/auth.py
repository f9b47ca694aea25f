from datetime import datetime, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from .config import settings
from .database import get_db
from ..models.user import User
import logging

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer()

# Higher number manages lower numbers
ROLE_HIERARCHY = {
    "admin": 5,
    "madar": 4,
    "instructor": 3,
    "tester": 2,
    "student": 1,
}


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict):
    to_encode = data.copy()
    expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire})

    # Ensure 'sub' is a string (JWT requirement)
    if 'sub' in to_encode:
        to_encode['sub'] = str(to_encode['sub'])

    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)
    logger.info(f"Created token for user {data.get('sub')} with role {data.get('role')}")
    return encoded_jwt


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    token = credentials.credentials

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        user_id_str = payload.get("sub")
        role = payload.get("role")

        if user_id_str is None or role is None:
            logger.error("Token missing required fields")
            raise HTTPException(status_code=401, detail="Invalid token")

        try:
            user_id = int(user_id_str)
        except ValueError:
            logger.error(f"Cannot convert user_id '{user_id_str}' to int")
            raise HTTPException(status_code=401, detail="Invalid token")

        return {"user_id": user_id, "role": role}

    except JWTError as e:
        logger.error(f"JWT decode error: {e}")
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user(token_data: dict = Depends(verify_token), db: AsyncSession = Depends(get_db)) -> User:
    """Load the token's user; role changes and deactivation apply immediately"""
    result = await db.execute(select(User).filter(User.id == token_data["user_id"]))
    user = result.scalar_one_or_none()

    if not user:
        logger.error(f"Token user {token_data['user_id']} no longer exists")
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        logger.error(f"Inactive user {user.id} tried to access the API")
        raise HTTPException(status_code=401, detail="User account is disabled")

    return user


def require_roles(*roles: str):
    """Dependency factory: the current user must hold one of the given roles"""

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.error(f"Access denied - role '{current_user.role}' not in {roles}")
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return current_user

    return checker


def can_manage_role(manager_role: str, target_role: str) -> bool:
    """A role manages only the roles strictly below it"""
    if manager_role not in ROLE_HIERARCHY or target_role not in ROLE_HIERARCHY:
        return False
    return ROLE_HIERARCHY[manager_role] > ROLE_HIERARCHY[target_role]
