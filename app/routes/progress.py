"""
Progress routes: dashboard, per-roadmap detail, study sessions and
achievements for the authenticated learner.
"""
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, nulls_last

from app.database import get_db
from app.middleware.auth import get_current_user
from app.models.user import User
from app.models.user_progress import UserProgress, ACHIEVEMENTS
from app.schemas.progress import PreferencesUpdate, StudySession
from app.utils.logger import logger

router = APIRouter()

RECENT_ACTIVITY_DAYS = 7


async def _require_progress(db: AsyncSession, user_id: int, roadmap_id: str) -> UserProgress:
    result = await db.execute(
        select(UserProgress).where(UserProgress.user_id == user_id, UserProgress.roadmap_id == roadmap_id)
    )
    progress = result.scalar_one_or_none()
    if not progress:
        raise HTTPException(status_code=404, detail="Progress record not found")
    return progress


def _roadmap_summary(progress: UserProgress):
    roadmap = progress.roadmap
    if roadmap is None:
        return None
    return {
        "roadmapId": roadmap.roadmap_id,
        "title": roadmap.title,
        "field": roadmap.field,
        "level": roadmap.level,
        "duration": (roadmap.overview or {}).get("duration"),
        "status": roadmap.status,
    }


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def dashboard_stats(records) -> dict:
    return {
        "totalRoadmaps": len(records),
        "completedRoadmaps": sum(1 for p in records if p.completed_at),
        "inProgressRoadmaps": sum(1 for p in records if not p.completed_at and p.overall_progress > 0),
        "notStartedRoadmaps": sum(1 for p in records if p.overall_progress == 0),
        "totalTimeSpent": sum(p.total_time_spent or 0 for p in records),
        "averageProgress": round(sum(p.overall_progress for p in records) / len(records)) if records else 0,
        "currentStreak": max((p.streak_days or 0 for p in records), default=0),
        "longestStreak": max((p.longest_streak or 0 for p in records), default=0),
        "totalAchievements": sum(len(p.achievements or []) for p in records),
    }


def recent_activity(records, now: Optional[datetime] = None, limit: int = 10):
    """Steps completed in the last week, newest first"""
    since = (now or datetime.utcnow()) - timedelta(days=RECENT_ACTIVITY_DAYS)
    activity = []
    for progress in records:
        title = progress.roadmap.title if progress.roadmap else None
        for phase in progress.phases:
            for step in phase["steps"]:
                completed_at = _parse_timestamp(step.get("completedAt"))
                if completed_at and completed_at >= since:
                    activity.append({
                        "type": "step_completed",
                        "roadmapId": progress.roadmap_id,
                        "roadmapTitle": title,
                        "phaseId": phase["phaseId"],
                        "stepId": step["stepId"],
                        "completedAt": step["completedAt"],
                        "timeSpent": step.get("timeSpent", 0),
                    })
    activity.sort(key=lambda a: a["completedAt"], reverse=True)
    return activity[:limit]


def upcoming_milestones(records, limit: int = 5):
    """The next unfinished step of every unfinished roadmap"""
    milestones = []
    for progress in records:
        if progress.completed_at:
            continue
        next_phase = next((p for p in progress.phases if not p.get("completedAt")), None)
        if next_phase is None:
            continue
        next_step = next((s for s in next_phase["steps"] if not s.get("completed")), None)
        if next_step is None:
            continue
        milestones.append({
            "roadmapId": progress.roadmap_id,
            "roadmapTitle": progress.roadmap.title if progress.roadmap else None,
            "phaseId": next_phase["phaseId"],
            "stepId": next_step["stepId"],
            "estimatedCompletion": progress.estimated_completion().isoformat(),
        })
    return milestones[:limit]


def phase_breakdown(progress: UserProgress):
    breakdown = []
    for phase in progress.phases:
        steps = phase["steps"]
        done = sum(1 for s in steps if s.get("completed"))
        breakdown.append({
            "phaseId": phase["phaseId"],
            "progress": round(done / len(steps) * 100) if steps else 0,
            "completedSteps": done,
            "totalSteps": len(steps),
            "timeSpent": sum(s.get("timeSpent") or 0 for s in steps),
            "startedAt": phase.get("startedAt"),
            "completedAt": phase.get("completedAt"),
            "steps": steps,
        })
    return breakdown


@router.get("/dashboard")
async def get_dashboard(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Aggregate stats across every roadmap the user is following"""
    result = await db.execute(
        select(UserProgress)
        .where(UserProgress.user_id == current_user.id)
        .order_by(UserProgress.last_updated.desc())
    )
    records = result.scalars().unique().all()

    return {
        "success": True,
        "data": {
            "stats": dashboard_stats(records),
            "roadmaps": [{**p.to_dict(), "roadmap": _roadmap_summary(p)} for p in records],
            "recentActivity": recent_activity(records),
            "upcomingMilestones": upcoming_milestones(records),
        }
    }


@router.get("/meta/leaderboard")
async def get_leaderboard(
    roadmap_id: Optional[str] = Query(None, alias="roadmapId", min_length=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Rank learners by progress

    Ties go to whoever spent less time, then to whoever finished first.
    """
    query = select(UserProgress)
    if roadmap_id:
        query = query.where(UserProgress.roadmap_id == roadmap_id)
    query = query.order_by(
        UserProgress.overall_progress.desc(),
        UserProgress.total_time_spent.asc(),
        nulls_last(UserProgress.completed_at.asc()),
    ).limit(limit)

    records = (await db.execute(query)).scalars().unique().all()

    leaderboard = [
        {
            "rank": index + 1,
            "user": {"id": p.user.id, "name": p.user.name} if p.user else None,
            "roadmap": {"title": p.roadmap.title, "field": p.roadmap.field} if p.roadmap else None,
            "progress": p.overall_progress,
            "timeSpent": p.total_time_spent,
            "completedAt": p.completed_at.isoformat() if p.completed_at else None,
            "achievements": len(p.achievements or []),
            "streakDays": p.streak_days,
        }
        for index, p in enumerate(records)
    ]

    return {"success": True, "data": leaderboard}


@router.get("/{roadmap_id}")
async def get_roadmap_progress(
    roadmap_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Detailed statistics and phase-by-phase breakdown for one roadmap"""
    progress = await _require_progress(db, current_user.id, roadmap_id)
    roadmap = progress.roadmap
    completed_steps, total_steps = progress.step_counts()

    stats = {
        "overallProgress": progress.overall_progress,
        "totalPhases": len(progress.phases),
        "completedPhases": sum(1 for p in progress.phases if p.get("completedAt")),
        "totalSteps": total_steps,
        "completedSteps": completed_steps,
        "timeSpent": progress.total_time_spent,
        "estimatedTimeRemaining": progress.estimated_time_remaining(roadmap),
        "averageStepRating": progress.average_step_rating(),
        "studyStreakDays": progress.streak_days,
        "achievements": progress.achievements,
    }

    return {
        "success": True,
        "data": {
            "progress": progress.to_dict(),
            "roadmap": roadmap.roadmap_json() if roadmap else None,
            "stats": stats,
            "phaseBreakdown": phase_breakdown(progress),
        }
    }


@router.put("/{roadmap_id}/preferences")
async def update_preferences(
    roadmap_id: str,
    updates: PreferencesUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    progress = await _require_progress(db, current_user.id, roadmap_id)

    if updates.study_hours_per_week:
        progress.study_hours_per_week = updates.study_hours_per_week
    if updates.target_completion_date:
        progress.target_completion_date = updates.target_completion_date
    if updates.preferred_study_times is not None:
        progress.preferred_study_times = [
            t.model_dump(by_alias=True, exclude_none=True) for t in updates.preferred_study_times
        ]
    if updates.learning_preferences:
        progress.learning_preferences = {
            **(progress.learning_preferences or {}),
            **updates.learning_preferences.model_dump(by_alias=True, exclude_none=True),
        }
    if updates.custom_notes:
        progress.custom_notes = updates.custom_notes

    progress.last_updated = datetime.utcnow()
    await db.commit()

    return {
        "success": True,
        "message": "Preferences updated successfully",
        "data": progress.to_dict()
    }


@router.post("/{roadmap_id}/session")
async def log_study_session(
    roadmap_id: str,
    session: StudySession,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Record a study session and attribute time to the steps worked on"""
    progress = await _require_progress(db, current_user.id, roadmap_id)

    progress.add_study_time(session.duration)
    for worked in session.steps_worked_on:
        progress.log_step_time(worked.phase_id, worked.step_id, worked.time_spent or 0)
    progress.touch()

    await db.commit()

    logger.info(f"[Progress] Logged {session.duration}h session on {roadmap_id}",
                extra={"roadmap_id": roadmap_id})

    return {
        "success": True,
        "message": "Study session logged successfully",
        "data": {
            "totalTimeSpent": progress.total_time_spent,
            "sessionCount": progress.study_sessions,
            "streakDays": progress.streak_days,
        }
    }


@router.get("/{roadmap_id}/achievements")
async def get_achievements(
    roadmap_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The full achievement catalog, marking the ones already earned"""
    progress = await _require_progress(db, current_user.id, roadmap_id)
    earned = {a["type"]: a for a in progress.achievements or []}

    achievements = [
        {
            **achievement,
            "earned": achievement["type"] in earned,
            "earnedAt": earned[achievement["type"]].get("achievedAt") if achievement["type"] in earned else None,
        }
        for achievement in ACHIEVEMENTS
    ]

    return {
        "success": True,
        "data": {
            "achievements": achievements,
            "totalEarned": len(earned),
            "totalPossible": len(ACHIEVEMENTS),
        }
    }
