from sqlalchemy import Column, Integer, String, DateTime, Date, Text, Float, ForeignKey, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.orm.attributes import flag_modified
from datetime import datetime, date, timedelta
from typing import Optional
import math

from app.database import Base

DEFAULT_STUDY_HOURS_PER_WEEK = 10
AVERAGE_HOURS_PER_STEP = 2

# Every achievement a learner can unlock, in display order
ACHIEVEMENTS = [
    {"type": "first_step", "title": "First Step Complete!", "description": "Complete your first learning step"},
    {"type": "first_phase", "title": "Phase Master!", "description": "Complete your first learning phase"},
    {"type": "first_project", "title": "Project Builder!", "description": "Complete your first project"},
    {"type": "streak_7_days", "title": "Week Warrior!", "description": "Study for 7 consecutive days"},
    {"type": "streak_30_days", "title": "Monthly Master!", "description": "Study for 30 consecutive days"},
    {"type": "fast_learner", "title": "Fast Learner!", "description": "Complete steps faster than average"},
    {"type": "consistent_learner", "title": "Consistent Learner!", "description": "Maintain regular study schedule"},
    {"type": "roadmap_completed", "title": "Roadmap Conqueror!", "description": "Complete the entire roadmap"},
]

# Text stored on the record when an achievement is awarded
AWARD_TEXT = {
    "first_step": ("First Step Complete!", "You completed your first learning step"),
    "first_phase": ("Phase Master!", "You completed your first learning phase"),
    "streak_7_days": ("Week Warrior!", "You studied for 7 consecutive days"),
    "streak_30_days": ("Monthly Master!", "You studied for 30 consecutive days"),
    "roadmap_completed": ("Roadmap Conqueror!", "You completed the entire roadmap"),
}

DEFAULT_LEARNING_PREFERENCES = {
    "preferredResourceTypes": [],
    "difficultyPreference": "moderate",
    "pacePreference": "moderate",
}

DEFAULT_NOTIFICATIONS = {
    "dailyReminder": {"enabled": True, "time": "09:00"},
    "weeklyGoal": {"enabled": True, "hoursPerWeek": 10},
    "milestoneReminder": True,
}


def _iso(value):
    return value.isoformat() if value else None


def mirror_phases(phases):
    """Build an empty progress mirror from a roadmap phases document"""
    return [
        {
            "phaseId": phase["id"],
            "startedAt": None,
            "completedAt": None,
            "overallProgress": 0,
            "steps": [
                {
                    "stepId": step["id"],
                    "completed": False,
                    "completedAt": None,
                    "timeSpent": 0,
                    "rating": None,
                    "notes": None,
                }
                for step in phase.get("steps") or []
            ],
        }
        for phase in phases or []
    ]


class UserProgress(Base):
    """
    Per-user completion ledger against one roadmap.

    Phases mirror the roadmap's phases/steps with completion flags; the
    methods below keep percentages, study stats, streaks and achievements
    consistent whenever a step or study session is recorded.
    """
    __tablename__ = "user_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "roadmap_id", name="uq_user_progress_user_roadmap"),
        Index("ix_user_progress_user_updated", "user_id", "last_updated"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    roadmap_id = Column(String, nullable=False, index=True)
    roadmap_pk = Column(Integer, ForeignKey("roadmaps.id", ondelete="CASCADE"), nullable=False, index=True)

    started_at = Column(DateTime, default=datetime.utcnow)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime)

    phases = Column(JSON, nullable=False, default=list)
    overall_progress = Column(Integer, nullable=False, default=0, index=True)

    custom_notes = Column(Text)
    target_completion_date = Column(DateTime)

    # Study preferences
    study_hours_per_week = Column(Integer, default=DEFAULT_STUDY_HOURS_PER_WEEK)
    preferred_study_times = Column(JSON, default=list)
    learning_preferences = Column(JSON, default=dict)
    notifications = Column(JSON, default=dict)

    # Statistics (hours)
    total_time_spent = Column(Float, default=0.0)
    average_session_time = Column(Float, default=0.0)
    study_sessions = Column(Integer, default=0)
    streak_days = Column(Integer, default=0, index=True)
    longest_streak = Column(Integer, default=0)
    last_study_date = Column(Date)

    achievements = Column(JSON, default=list)

    # The learner's own rating of the roadmap
    rating = Column(Integer)
    rating_feedback = Column(Text)
    rated_at = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", lazy="joined")
    roadmap = relationship("Roadmap", lazy="joined")

    def __init__(self, **kwargs):
        kwargs.setdefault("phases", [])
        kwargs.setdefault("overall_progress", 0)
        kwargs.setdefault("study_hours_per_week", DEFAULT_STUDY_HOURS_PER_WEEK)
        kwargs.setdefault("preferred_study_times", [])
        kwargs.setdefault("learning_preferences", dict(DEFAULT_LEARNING_PREFERENCES))
        kwargs.setdefault("notifications", dict(DEFAULT_NOTIFICATIONS))
        kwargs.setdefault("total_time_spent", 0.0)
        kwargs.setdefault("average_session_time", 0.0)
        kwargs.setdefault("study_sessions", 0)
        kwargs.setdefault("streak_days", 0)
        kwargs.setdefault("longest_streak", 0)
        kwargs.setdefault("achievements", [])
        kwargs.setdefault("started_at", datetime.utcnow())
        super().__init__(**kwargs)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_phase(self, phase_id: str) -> Optional[dict]:
        return next((p for p in self.phases if p["phaseId"] == phase_id), None)

    def find_step(self, phase_id: str, step_id: str) -> Optional[dict]:
        phase = self.find_phase(phase_id)
        if phase is None:
            return None
        return next((s for s in phase["steps"] if s["stepId"] == step_id), None)

    def _require_step(self, phase_id: str, step_id: str):
        phase = self.find_phase(phase_id)
        if phase is None:
            raise LookupError("Phase not found")
        step = next((s for s in phase["steps"] if s["stepId"] == step_id), None)
        if step is None:
            raise LookupError("Step not found")
        return phase, step

    def step_counts(self):
        """(completed, total) over every mirrored step"""
        total = sum(len(p["steps"]) for p in self.phases)
        completed = sum(1 for p in self.phases for s in p["steps"] if s.get("completed"))
        return completed, total

    def touch(self) -> None:
        """Mark the JSON documents dirty after in-place edits"""
        flag_modified(self, "phases")
        flag_modified(self, "achievements")
        self.last_updated = datetime.utcnow()

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def calculate_overall_progress(self) -> int:
        if not self.phases:
            self.overall_progress = 0
            return 0

        for phase in self.phases:
            steps = phase["steps"]
            if steps:
                done = sum(1 for s in steps if s.get("completed"))
                phase["overallProgress"] = round(done / len(steps) * 100)

        completed, total = self.step_counts()
        self.overall_progress = round(completed / total * 100) if total > 0 else 0
        return self.overall_progress

    def update_study_streak(self, today: Optional[date] = None) -> None:
        """Advance the consecutive-day streak for a study event on `today`"""
        today = today or datetime.utcnow().date()

        if self.last_study_date is None:
            self.streak_days = 1
            self.last_study_date = today
        else:
            diff_days = (today - self.last_study_date).days
            if diff_days == 1:
                self.streak_days = (self.streak_days or 0) + 1
                self.last_study_date = today
            elif diff_days > 1:
                self.streak_days = 1
                self.last_study_date = today
            # Same day: nothing changes

        if self.streak_days > (self.longest_streak or 0):
            self.longest_streak = self.streak_days

        self.check_achievements()

    def add_study_time(self, hours: float, today: Optional[date] = None) -> None:
        self.total_time_spent = (self.total_time_spent or 0) + hours
        self.study_sessions = (self.study_sessions or 0) + 1
        self.average_session_time = self.total_time_spent / self.study_sessions
        self.update_study_streak(today)

    def complete_step(self, phase_id: str, step_id: str, time_spent: float = 0,
                      rating: Optional[int] = None, notes: str = "",
                      today: Optional[date] = None) -> dict:
        phase, step = self._require_step(phase_id, step_id)
        now = datetime.utcnow()

        if phase.get("startedAt") is None:
            phase["startedAt"] = now.isoformat()

        step["completed"] = True
        step["completedAt"] = now.isoformat()
        step["timeSpent"] = (step.get("timeSpent") or 0) + time_spent
        if rating:
            step["rating"] = rating
        if notes:
            step["notes"] = notes

        self.add_study_time(time_spent, today)
        self.calculate_overall_progress()

        if all(s.get("completed") for s in phase["steps"]) and not phase.get("completedAt"):
            phase["completedAt"] = now.isoformat()
            self.check_achievements()

        if all(p.get("completedAt") for p in self.phases) and not self.completed_at:
            self.completed_at = now
            self.check_achievements()

        self.touch()
        return step

    def uncomplete_step(self, phase_id: str, step_id: str) -> dict:
        phase, step = self._require_step(phase_id, step_id)
        step["completed"] = False
        step["completedAt"] = None
        phase["completedAt"] = None
        self.completed_at = None
        self.calculate_overall_progress()
        self.touch()
        return step

    def set_step_notes(self, phase_id: str, step_id: str, notes: str) -> dict:
        _, step = self._require_step(phase_id, step_id)
        step["notes"] = notes
        self.touch()
        return step

    def rate_step(self, phase_id: str, step_id: str, rating: int) -> dict:
        if rating is None or rating < 1 or rating > 5:
            raise ValueError("Rating must be between 1 and 5")
        _, step = self._require_step(phase_id, step_id)
        step["rating"] = rating
        self.touch()
        return step

    def log_step_time(self, phase_id: str, step_id: str, hours: float) -> None:
        """Attribute part of a study session to one step; unknown steps are ignored"""
        step = self.find_step(phase_id, step_id)
        if step is not None and hours:
            step["timeSpent"] = (step.get("timeSpent") or 0) + hours

    def check_achievements(self) -> list:
        """Award any newly earned achievements; returns the new ones"""
        earned = {a["type"] for a in self.achievements}
        awarded = []

        def award(kind):
            title, description = AWARD_TEXT[kind]
            entry = {
                "type": kind,
                "title": title,
                "description": description,
                "achievedAt": datetime.utcnow().isoformat(),
            }
            self.achievements.append(entry)
            earned.add(kind)
            awarded.append(entry)

        if "first_step" not in earned and any(s.get("completed") for p in self.phases for s in p["steps"]):
            award("first_step")
        if "first_phase" not in earned and any(p.get("completedAt") for p in self.phases):
            award("first_phase")
        if "streak_7_days" not in earned and (self.streak_days or 0) >= 7:
            award("streak_7_days")
        if "streak_30_days" not in earned and (self.streak_days or 0) >= 30:
            award("streak_30_days")
        if "roadmap_completed" not in earned and self.completed_at:
            award("roadmap_completed")

        if awarded:
            flag_modified(self, "achievements")
        return awarded

    def rate_roadmap(self, rating: int, feedback: str = "") -> None:
        if rating < 1 or rating > 5:
            raise ValueError("Rating must be between 1 and 5")
        self.rating = rating
        self.rating_feedback = feedback or ""
        self.rated_at = datetime.utcnow()

    # ------------------------------------------------------------------
    # Derived figures
    # ------------------------------------------------------------------

    def estimated_completion(self, now: Optional[datetime] = None) -> datetime:
        if self.completed_at:
            return self.completed_at

        hours_per_week = self.study_hours_per_week or DEFAULT_STUDY_HOURS_PER_WEEK
        completed, total = self.step_counts()
        remaining_hours = (total - completed) * AVERAGE_HOURS_PER_STEP
        remaining_weeks = math.ceil(remaining_hours / hours_per_week)

        return (now or datetime.utcnow()) + timedelta(days=remaining_weeks * 7)

    def estimated_time_remaining(self, roadmap) -> int:
        """Hours left at the learner's own pace so far"""
        if roadmap is None or self.completed_at:
            return 0
        completed, _ = self.step_counts()
        remaining = roadmap.total_steps() - completed
        per_step = (self.total_time_spent or 0) / max(completed, 1)
        return round(remaining * per_step)

    def average_step_rating(self) -> float:
        ratings = [s["rating"] for p in self.phases for s in p["steps"] if s.get("rating")]
        if not ratings:
            return 0
        return round(sum(ratings) / len(ratings), 1)

    def stats(self):
        return {
            "totalTimeSpent": self.total_time_spent,
            "averageSessionTime": self.average_session_time,
            "studySessions": self.study_sessions,
            "streakDays": self.streak_days,
            "longestStreak": self.longest_streak,
            "lastStudyDate": _iso(self.last_study_date),
        }

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "roadmapId": self.roadmap_id,
            "startedAt": _iso(self.started_at),
            "lastUpdated": _iso(self.last_updated),
            "completedAt": _iso(self.completed_at),
            "phases": self.phases,
            "overallProgress": self.overall_progress,
            "customNotes": self.custom_notes,
            "targetCompletionDate": _iso(self.target_completion_date),
            "studyHoursPerWeek": self.study_hours_per_week,
            "preferredStudyTimes": self.preferred_study_times or [],
            "learningPreferences": self.learning_preferences or {},
            "notifications": self.notifications or {},
            "stats": self.stats(),
            "achievements": self.achievements or [],
            "roadmapRating": {
                "rating": self.rating,
                "feedback": self.rating_feedback,
                "ratedAt": _iso(self.rated_at),
            } if self.rating else None,
            "estimatedCompletion": _iso(self.estimated_completion()),
        }
