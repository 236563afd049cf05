import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_

from app.database import get_db
from app.middleware.auth import get_current_user
from app.models.learning_path import LearningPath
from app.models.user import User

router = APIRouter()

SORTABLE_FIELDS = {
    "popularity": LearningPath.popularity,
    "title": LearningPath.title,
    "rating": LearningPath.rating_average,
    "estimatedDuration": LearningPath.estimated_duration,
    "totalHours": LearningPath.total_hours,
    "createdAt": LearningPath.created_at,
}


class PathRating(BaseModel):
    rating: int = Field(..., ge=1, le=5)


def text_filter(query: str):
    pattern = f"%{query.strip()}%"
    return or_(
        LearningPath.title.ilike(pattern),
        LearningPath.description.ilike(pattern),
        LearningPath.category.ilike(pattern),
    )


def skill_band(average_level: float) -> str:
    """Difficulty matching an average skill level"""
    if average_level < 40:
        return "beginner"
    if average_level < 70:
        return "intermediate"
    return "advanced"


def relevance_score(path: LearningPath, user: User, open_goals) -> int:
    score = 0
    title = path.title.lower()
    for goal in open_goals:
        goal_title = goal.title.lower()
        if goal_title in title or title in goal_title:
            score += 2

    if path.category == user.field:
        score += 1

    if path.difficulty == skill_band(user.average_skill_level()):
        score += 1

    return score


@router.get("/paths")
async def list_paths(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    category: Optional[str] = None,
    difficulty: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = Query("popularity", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    db: AsyncSession = Depends(get_db)
):
    """List active learning paths with filtering, sorting and pagination"""
    filters = [LearningPath.is_active.is_(True)]
    if category:
        filters.append(LearningPath.category == category)
    if difficulty:
        filters.append(LearningPath.difficulty == difficulty)
    if search:
        filters.append(text_filter(search))

    column = SORTABLE_FIELDS.get(sort_by, LearningPath.popularity)
    order = column.desc() if sort_order == "desc" else column.asc()
    skip = (page - 1) * limit

    result = await db.execute(
        select(LearningPath).where(*filters).order_by(order, LearningPath.id).offset(skip).limit(limit)
    )
    paths = result.scalars().all()
    total = (await db.execute(select(func.count(LearningPath.id)).where(*filters))).scalar() or 0

    return {
        "success": True,
        "data": {
            "learningPaths": [p.to_dict() for p in paths],
            "pagination": {
                "currentPage": page,
                "totalPages": math.ceil(total / limit),
                "totalPaths": total,
                "hasNext": skip + limit < total,
                "hasPrev": page > 1,
            }
        }
    }


@router.get("/paths/{path_id}")
async def get_path(path_id: int, db: AsyncSession = Depends(get_db)):
    path = await db.get(LearningPath, path_id)
    if not path or not path.is_active:
        raise HTTPException(status_code=404, detail="Learning path not found")

    return {"success": True, "data": {"learningPath": path.to_dict()}}


@router.post("/paths/{path_id}/rate")
async def rate_path(
    path_id: int,
    body: PathRating,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    # Not tracked per user: every submission counts
    path = await db.get(LearningPath, path_id)
    if not path:
        raise HTTPException(status_code=404, detail="Learning path not found")

    path.add_rating(body.rating)
    await db.commit()

    return {
        "success": True,
        "message": "Rating submitted successfully",
        "data": {"rating": {"average": path.rating_average, "count": path.rating_count}}
    }


@router.get("/personalized")
async def personalized_paths(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Top 5 paths for the user's open goals, field and skill level"""
    open_goals = [g for g in current_user.goals if g.status != "completed"]

    conditions = [LearningPath.category == current_user.field]
    conditions.extend(LearningPath.title.ilike(f"%{goal.title}%") for goal in open_goals)

    result = await db.execute(
        select(LearningPath)
        .where(LearningPath.is_active.is_(True), or_(*conditions))
        .order_by(LearningPath.popularity.desc())
        .limit(10)
    )

    ranked = [
        {**path.to_dict(), "relevanceScore": relevance_score(path, current_user, open_goals)}
        for path in result.scalars().all()
    ]
    ranked.sort(key=lambda p: p["relevanceScore"], reverse=True)

    return {"success": True, "data": {"learningPaths": ranked[:5]}}


@router.get("/categories")
async def list_categories(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(LearningPath.category)
        .where(LearningPath.is_active.is_(True))
        .distinct()
        .order_by(LearningPath.category)
    )
    return {"success": True, "data": {"categories": list(result.scalars().all())}}


@router.get("/search/{query}")
async def search_paths(
    query: str,
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(LearningPath)
        .where(LearningPath.is_active.is_(True), text_filter(query))
        .order_by(LearningPath.popularity.desc())
        .limit(limit)
    )
    return {"success": True, "data": {"learningPaths": [p.to_dict() for p in result.scalars().all()]}}


@router.get("/popular")
async def popular_paths(
    limit: int = Query(5, ge=1, le=50),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(
        select(LearningPath)
        .where(LearningPath.is_active.is_(True))
        .order_by(LearningPath.popularity.desc(), LearningPath.rating_average.desc())
        .limit(limit)
    )
    return {"success": True, "data": {"learningPaths": [p.to_dict() for p in result.scalars().all()]}}
