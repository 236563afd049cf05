from typing import List, Literal, Optional
from pydantic import Field

from app.schemas import CamelModel, UTCDateTime

Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
ResourceType = Literal["video", "article", "course", "book", "documentation", "tutorial"]


class StudyTime(CamelModel):
    day: Weekday
    start_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")
    end_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")


class LearningPreferences(CamelModel):
    preferred_resource_types: Optional[List[ResourceType]] = None
    difficulty_preference: Optional[Literal["easy", "moderate", "challenging"]] = None
    pace_preference: Optional[Literal["slow", "moderate", "fast"]] = None


class PreferencesUpdate(CamelModel):
    study_hours_per_week: Optional[int] = Field(None, ge=1, le=168)
    target_completion_date: Optional[UTCDateTime] = None
    preferred_study_times: Optional[List[StudyTime]] = None
    learning_preferences: Optional[LearningPreferences] = None
    custom_notes: Optional[str] = Field(None, max_length=2000)


class StepTime(CamelModel):
    phase_id: str
    step_id: str
    time_spent: Optional[float] = Field(None, ge=0)


class StudySession(CamelModel):
    duration: float = Field(..., ge=0.1, le=24)
    steps_worked_on: List[StepTime] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=500)
