from fastapi import Header, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt

from app.config import get_settings
from app.database import get_db
from app.models.user import User
from app.utils.logger import logger, user_id_var

JWT_ALGORITHM = "HS256"


def create_access_token(user_id: int) -> str:
    """Sign a bearer token carrying the user's id"""
    settings = get_settings()
    payload = {
        "id": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(days=settings.jwt_expire_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency to get the current user from an `Authorization: Bearer <jwt>` header

    Usage:
        @router.get("/endpoint")
        async def protected_endpoint(current_user: User = Depends(get_current_user)):
            ...
    """
    if not authorization or not authorization.startswith("Bearer"):
        raise _unauthorized("Not authorized, no token")

    parts = authorization.split()
    if len(parts) != 2:
        raise _unauthorized("Not authorized, token failed")

    try:
        payload = jwt.decode(parts[1], get_settings().jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError as e:
        logger.warning(f"[Auth] Token verification failed: {type(e).__name__}")
        raise _unauthorized("Not authorized, token failed")

    result = await db.execute(
        select(User)
        .where(User.id == payload.get("id"))
        .options(selectinload(User.skills), selectinload(User.goals), selectinload(User.course_progress))
    )
    user = result.scalar_one_or_none()

    if not user:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise _unauthorized("Account has been deactivated")

    user_id_var.set(user.id)

    return user