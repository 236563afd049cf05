"""
Profile routes: personal details, skills, goals and course progress.

All endpoints act on the authenticated user.
"""
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.database import get_db
from app.middleware.auth import get_current_user
from app.models.user import User, UserSkill, UserGoal, CourseProgress
from app.models.user_progress import UserProgress
from app.schemas.users import ProfileUpdate, SkillUpsert, GoalCreate, GoalUpdate, CourseProgressUpdate
from app.utils.logger import logger

router = APIRouter()

# Self-reported courses are assumed to take this long in full
HOURS_PER_COURSE = 10


def _find_goal(user: User, goal_id: int) -> UserGoal:
    goal = next((g for g in user.goals if g.id == goal_id), None)
    if not goal:
        raise HTTPException(status_code=404, detail="Goal not found")
    return goal


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": {"user": current_user.to_dict()}}


@router.put("/profile")
async def update_profile(
    updates: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update the whitelisted profile fields that were sent"""
    for key, value in updates.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(current_user, key, value)

    await db.commit()

    return {
        "success": True,
        "message": "Profile updated successfully",
        "data": {"user": current_user.to_dict()}
    }


@router.post("/skills")
async def upsert_skill(
    skill: SkillUpsert,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Add a skill, or update it when the user already has one with that name"""
    existing = current_user.find_skill(skill.name)
    if existing:
        existing.level = skill.level
        existing.category = skill.category
    else:
        current_user.skills.append(UserSkill(name=skill.name, level=skill.level, category=skill.category))

    await db.commit()

    return {
        "success": True,
        "message": "Skill updated successfully",
        "data": {"skills": [s.to_dict() for s in current_user.skills]}
    }


@router.delete("/skills/{skill_id}")
async def remove_skill(
    skill_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    # Unknown ids are a no-op
    skill = next((s for s in current_user.skills if s.id == skill_id), None)
    if skill:
        current_user.skills.remove(skill)
        await db.commit()

    return {
        "success": True,
        "message": "Skill removed successfully",
        "data": {"skills": [s.to_dict() for s in current_user.skills]}
    }


@router.post("/goals", status_code=201)
async def add_goal(
    goal: GoalCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    current_user.goals.append(UserGoal(
        title=goal.title,
        description=goal.description,
        target_date=goal.target_date,
        priority=goal.priority,
        status="planned",
        created_at=datetime.utcnow(),
    ))
    await db.commit()

    return {
        "success": True,
        "message": "Goal added successfully",
        "data": {"goals": [g.to_dict() for g in current_user.goals]}
    }


@router.put("/goals/{goal_id}")
async def update_goal(
    goal_id: int,
    updates: GoalUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    goal = _find_goal(current_user, goal_id)
    for key, value in updates.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(goal, key, value)

    await db.commit()

    return {
        "success": True,
        "message": "Goal updated successfully",
        "data": {"goals": [g.to_dict() for g in current_user.goals]}
    }


@router.delete("/goals/{goal_id}")
async def delete_goal(
    goal_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    goal = _find_goal(current_user, goal_id)
    current_user.goals.remove(goal)
    await db.commit()

    return {
        "success": True,
        "message": "Goal deleted successfully",
        "data": {"goals": [g.to_dict() for g in current_user.goals]}
    }


@router.put("/progress")
async def update_course_progress(
    update: CourseProgressUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Record self-reported progress on an external course"""
    now = datetime.utcnow()
    entry = next((p for p in current_user.course_progress if p.course_id == update.course_id), None)

    if entry:
        entry.progress_percent = update.progress_percent
        entry.course_name = update.course_name
    else:
        entry = CourseProgress(
            course_id=update.course_id,
            course_name=update.course_name,
            progress_percent=update.progress_percent,
            started_at=now,
        )
        current_user.course_progress.append(entry)

    if update.progress_percent == 100:
        entry.completed_at = now

    await db.commit()

    return {
        "success": True,
        "message": "Progress updated successfully",
        "data": {"progress": [p.to_dict() for p in current_user.course_progress]}
    }


@router.get("/stats")
async def get_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Counts over the profile plus the best active roadmap streak"""
    result = await db.execute(
        select(UserProgress.streak_days).where(UserProgress.user_id == current_user.id)
    )
    streaks = [s or 0 for s in result.scalars().all()]

    courses = current_user.course_progress
    stats = {
        "totalSkills": len(current_user.skills),
        "completedGoals": sum(1 for g in current_user.goals if g.status == "completed"),
        "totalGoals": len(current_user.goals),
        "completedCourses": sum(1 for p in courses if p.progress_percent == 100),
        "totalCourses": len(courses),
        "totalStudyHours": sum(p.progress_percent / 100 * HOURS_PER_COURSE for p in courses),
        "currentStreak": max(streaks, default=0),
    }

    logger.debug(f"[Users] Stats for user {current_user.id}: {stats}")

    return {"success": True, "data": {"stats": stats}}
