"""Request bodies for accounts and profile data"""
from typing import Literal, Optional
from pydantic import EmailStr, Field

from app.models.user import FIELDS_OF_STUDY, GOAL_STATUSES, GOAL_PRIORITIES
from app.schemas import CamelModel, UTCDateTime

FieldOfStudy = Literal[FIELDS_OF_STUDY]
GoalStatus = Literal[GOAL_STATUSES]
GoalPriority = Literal[GOAL_PRIORITIES]


class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    field: FieldOfStudy


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    bio: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = None
    phone: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    website: Optional[str] = None


class SkillUpsert(CamelModel):
    name: str = Field(..., min_length=1)
    level: int = Field(..., ge=0, le=100)
    category: str = Field(..., min_length=1)


class GoalCreate(CamelModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    target_date: UTCDateTime
    priority: GoalPriority = 'medium'


class GoalUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    target_date: Optional[UTCDateTime] = None
    status: Optional[GoalStatus] = None
    priority: Optional[GoalPriority] = None


class CourseProgressUpdate(CamelModel):
    course_id: str = Field(..., min_length=1)
    course_name: str = Field(..., min_length=1)
    progress_percent: int = Field(..., ge=0, le=100)
