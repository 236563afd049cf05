"""
Career catalog routes.

Static paths are declared before `/{career_id}` so they are never captured
by the id route.
"""
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from app.database import get_db
from app.middleware.auth import get_current_user
from app.models.career import Career
from app.models.user import User

router = APIRouter()

SORTABLE_FIELDS = {
    "title": Career.title,
    "category": Career.category,
    "growthRate": Career.growth_rate,
    "salary": Career.salary_min,
    "createdAt": Career.created_at,
}


def text_filter(query: str):
    pattern = f"%{query.strip()}%"
    return or_(Career.title.ilike(pattern), Career.description.ilike(pattern), Career.category.ilike(pattern))


def match_percentage(career: Career, skill_names: set, field: str) -> int:
    """Share of required skills the user has, with a half-point bonus for a matching field"""
    required = career.required_skills or []
    score = sum(1 for skill in required if skill.get("name", "").lower() in skill_names)
    if career.category == field:
        score += 0.5
    return round(score / (len(required) + 0.5) * 100)


@router.get("/")
@router.get("", include_in_schema=False)
async def list_careers(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    experience_level: Optional[str] = Query(None, alias="experienceLevel"),
    education_level: Optional[str] = Query(None, alias="educationLevel"),
    search: Optional[str] = None,
    sort_by: str = Query("title", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    db: AsyncSession = Depends(get_db)
):
    """List active careers with filtering, sorting and pagination"""
    filters = [Career.is_active.is_(True)]
    if category:
        filters.append(Career.category == category)
    if experience_level:
        filters.append(Career.experience_level == experience_level)
    if education_level:
        filters.append(Career.education_level == education_level)
    if search:
        filters.append(text_filter(search))

    column = SORTABLE_FIELDS.get(sort_by, Career.title)
    order = column.desc() if sort_order == "desc" else column.asc()
    skip = (page - 1) * limit

    result = await db.execute(select(Career).where(*filters).order_by(order).offset(skip).limit(limit))
    careers = result.scalars().all()
    total = (await db.execute(select(func.count(Career.id)).where(*filters))).scalar() or 0

    return {
        "success": True,
        "data": {
            "careers": [c.to_dict() for c in careers],
            "pagination": {
                "currentPage": page,
                "totalPages": math.ceil(total / limit),
                "totalCareers": total,
                "hasNext": skip + limit < total,
                "hasPrev": page > 1,
            }
        }
    }


@router.get("/categories")
async def list_categories(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Career.category).where(Career.is_active.is_(True)).distinct().order_by(Career.category)
    )
    return {"success": True, "data": {"categories": list(result.scalars().all())}}


@router.get("/trending")
async def trending_careers(
    limit: int = Query(5, ge=1, le=50),
    db: AsyncSession = Depends(get_db)
):
    """High-growth careers with a good or excellent outlook"""
    result = await db.execute(
        select(Career)
        .where(
            Career.is_active.is_(True),
            Career.growth_rate >= 10,
            Career.job_outlook.in_(("excellent", "good")),
        )
        .order_by(Career.growth_rate.desc())
        .limit(limit)
    )
    return {"success": True, "data": {"careers": [c.to_dict() for c in result.scalars().all()]}}


@router.get("/search/{query}")
async def search_careers(
    query: str,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(Career).where(Career.is_active.is_(True), text_filter(query)).order_by(Career.title).limit(limit)
    )
    return {"success": True, "data": {"careers": [c.to_dict() for c in result.scalars().all()]}}


@router.get("/recommendations")
async def recommend_careers(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Top 5 careers ranked by overlap with the user's skills and field"""
    skill_names = {s.name.lower() for s in current_user.skills}

    result = await db.execute(select(Career).where(Career.is_active.is_(True)).order_by(Career.id))
    candidates = [
        career for career in result.scalars().all()
        if career.category == current_user.field
        or any(skill.get("name", "").lower() in skill_names for skill in career.required_skills or [])
    ]

    recommendations = [
        {**career.to_dict(), "matchPercentage": match_percentage(career, skill_names, current_user.field)}
        for career in candidates
    ]
    recommendations.sort(key=lambda r: r["matchPercentage"], reverse=True)

    return {"success": True, "data": {"recommendations": recommendations[:5]}}


@router.get("/{career_id}")
async def get_career(career_id: int, db: AsyncSession = Depends(get_db)):
    career = await db.get(Career, career_id)
    if not career or not career.is_active:
        raise HTTPException(status_code=404, detail="Career not found")

    return {"success": True, "data": {"career": career.to_dict()}}
