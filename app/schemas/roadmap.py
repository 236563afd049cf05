"""
Pydantic schemas for roadmaps.

The document schemas describe the `roadmap_json` payload the generation
workflow returns; unknown keys are kept so the document can be stored as
received.
"""
from typing import Annotated, List, Literal, Optional, Any, Dict
from pydantic import BaseModel, ConfigDict, Field

from app.models.roadmap import ROADMAP_FIELDS, ROADMAP_LEVELS, ROADMAP_STATUSES
from app.schemas import CamelModel

RoadmapField = Literal[ROADMAP_FIELDS]
RoadmapLevel = Literal[ROADMAP_LEVELS]
Difficulty = Annotated[int, Field(ge=1, le=5)]


class _Document(BaseModel):
    model_config = ConfigDict(extra="allow")


# ========== Generated document ==========
class RoadmapResource(_Document):
    title: str
    type: Literal["video", "article", "course", "book", "documentation", "tutorial"]
    url: str = Field(..., pattern=r"^https?://.+")
    duration: Optional[str] = None
    free: bool = True


class RoadmapProject(_Document):
    title: str
    description: str
    difficulty: Difficulty
    estimatedHours: float
    technologies: List[str] = Field(default_factory=list)


class RoadmapMilestone(_Document):
    title: str
    description: str
    verification: Optional[str] = None


class RoadmapStep(_Document):
    id: str
    title: str
    description: str
    type: Literal["course", "project", "certification", "practice", "reading"]
    duration: str
    order: int
    difficulty: Difficulty
    skills: List[str] = Field(default_factory=list)
    prerequisites: List[str] = Field(default_factory=list)
    resources: List[RoadmapResource] = Field(default_factory=list)
    projects: List[RoadmapProject] = Field(default_factory=list)
    milestones: List[RoadmapMilestone] = Field(default_factory=list)


class RoadmapPhase(_Document):
    id: str
    title: str
    description: str
    duration: str
    order: int
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$")
    steps: List[RoadmapStep] = Field(default_factory=list)


class RoadmapConnection(_Document):
    from_: str = Field(..., alias="from")
    to: str
    type: Literal["prerequisite", "recommended", "parallel", "optional"]
    label: Optional[str] = None


class SalaryRange(_Document):
    min: float
    max: float
    currency: str = "USD"


class RoadmapMetadata(_Document):
    aiModel: Optional[str] = None
    version: str = "1.0"
    tags: List[str] = Field(default_factory=list)
    industry: Optional[str] = None
    salaryRange: Optional[SalaryRange] = None


class RoadmapOverview(_Document):
    description: str
    duration: str
    difficulty: Difficulty
    outcomes: List[str] = Field(default_factory=list)


class RoadmapDocument(_Document):
    id: Optional[str] = None
    title: Optional[str] = None
    field: Optional[str] = None
    level: Optional[str] = None
    overview: RoadmapOverview
    phases: List[RoadmapPhase] = Field(default_factory=list)
    connections: List[RoadmapConnection] = Field(default_factory=list)
    metadata: RoadmapMetadata = Field(default_factory=RoadmapMetadata)


# ========== Requests ==========
class GenerateRequest(CamelModel):
    field: RoadmapField
    level: RoadmapLevel
    custom_requirements: Optional[str] = Field(None, max_length=500)


class ProgressActionRequest(CamelModel):
    action: Literal["complete_step", "uncomplete_step", "add_note", "rate_step"]
    phase_id: str = Field(..., min_length=1)
    step_id: str = Field(..., min_length=1)
    time_spent: Optional[float] = Field(None, ge=0)
    rating: Optional[int] = None
    notes: Optional[str] = Field(None, max_length=1000)


class RateRoadmapRequest(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=1000)


class GenerationResult(BaseModel):
    roadmap_json: Dict[str, Any]
    roadmap_doc: str = ""
    tokens: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")


class WebhookCallback(CamelModel):
    roadmap_id: str = Field(..., min_length=1)
    status: Literal[ROADMAP_STATUSES]
    # Validated as a GenerationResult by the callback route
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    workflow_id: Optional[str] = None
