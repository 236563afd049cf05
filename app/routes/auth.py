from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from app.database import get_db
from app.models.user import User
from app.middleware.auth import get_current_user, create_access_token
from app.middleware.rate_limit import limiter
from app.schemas.users import RegisterRequest, LoginRequest
from app.utils.logger import logger

router = APIRouter()


async def _load_user(db: AsyncSession, **criteria):
    result = await db.execute(
        select(User)
        .filter_by(**criteria)
        .options(selectinload(User.skills), selectinload(User.goals), selectinload(User.course_progress))
    )
    return result.scalar_one_or_none()


@router.post("/register", status_code=status.HTTP_201_CREATED)
@limiter.limit("5/hour")  # Rate limit: 5 registrations per hour per IP
async def register_user(
    request: Request,
    user_data: RegisterRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Register a new account

    Returns a bearer token together with the created user.
    """
    email = user_data.email.lower()
    if await _load_user(db, email=email):
        raise HTTPException(status_code=400, detail="User already exists with this email")

    user = User.create_user(
        name=user_data.name,
        email=email,
        password=user_data.password,
        field=user_data.field
    )
    db.add(user)
    await db.commit()

    user = await _load_user(db, id=user.id)
    logger.info(f"[Auth] Registered user {user.id}", extra={"user_id": user.id})

    return {
        "success": True,
        "message": "User registered successfully",
        "data": {
            "token": create_access_token(user.id),
            "user": user.to_dict()
        }
    }


@router.post("/login")
@limiter.limit("10/15minutes")  # Rate limit: 10 attempts per 15 minutes per IP
async def login_user(
    request: Request,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Exchange email + password for a bearer token"""
    user = await _load_user(db, email=credentials.email.lower())

    if not user or not user.check_password(credentials.password):
        logger.warning("[Auth] Failed login attempt")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account has been deactivated")

    user.last_login = datetime.utcnow()
    await db.commit()

    return {
        "success": True,
        "message": "Login successful",
        "data": {
            "token": create_access_token(user.id),
            "user": user.to_dict()
        }
    }


@router.get("/me")
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current authenticated user (requires authentication)"""
    return {
        "success": True,
        "data": {"user": current_user.to_dict()}
    }
