from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Float, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import re

from app.database import Base

ROADMAP_FIELDS = (
    "Web Development",
    "Mobile Development",
    "Data Science",
    "Machine Learning",
    "DevOps",
    "Cybersecurity",
    "UI/UX Design",
    "Product Management",
    "Digital Marketing",
    "Cloud Computing",
)
ROADMAP_LEVELS = ("Beginner", "Intermediate", "Advanced", "Expert")
ROADMAP_STATUSES = ("generating", "completed", "failed")


def slugify(value: str) -> str:
    """'Web Development' -> 'web-development'"""
    return re.sub(r"\s+", "-", value.strip().lower())


def iter_step_ids(phases):
    """Yield (phase_id, step_id) for every step of a phases document"""
    for phase in phases or []:
        for step in phase.get("steps") or []:
            yield phase.get("id"), step.get("id")


class Roadmap(Base):
    """
    AI-generated learning plan.

    The generated content (overview, phases, connections, metadata) is kept
    as JSON documents exactly as the generator produced them.
    """
    __tablename__ = "roadmaps"
    __table_args__ = (
        Index("ix_roadmaps_user_field", "user_id", "field"),
        Index("ix_roadmaps_field_level", "field", "level"),
        Index("ix_roadmaps_public_rating", "is_public", "rating_average"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    roadmap_id = Column(String, unique=True, nullable=False, index=True)

    title = Column(String(100), nullable=False)
    field = Column(String, nullable=False)
    level = Column(String, nullable=False)

    # Generated content
    overview = Column(JSON, nullable=False, default=dict)
    phases = Column(JSON, nullable=False, default=list)
    connections = Column(JSON, nullable=False, default=list)
    roadmap_metadata = Column("metadata", JSON, nullable=False, default=dict)
    documentation = Column(Text, nullable=False, default="")

    status = Column(String, nullable=False, default="generating", index=True)
    is_public = Column(Boolean, default=False)

    rating_average = Column(Float, default=0.0)
    rating_count = Column(Integer, default=0)

    # n8n workflow execution ID
    workflow_id = Column(String)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", lazy="joined")

    @property
    def url(self) -> str:
        return f"/roadmaps/{self.roadmap_id}"

    def total_steps(self) -> int:
        return sum(1 for _ in iter_step_ids(self.phases))

    def add_rating(self, rating: int) -> None:
        if rating < 1 or rating > 5:
            raise ValueError("Rating must be between 1 and 5")
        current_total = (self.rating_average or 0) * (self.rating_count or 0)
        self.rating_count = (self.rating_count or 0) + 1
        self.rating_average = (current_total + rating) / self.rating_count

    def completion_percentage(self, progress) -> int:
        """Share of this roadmap's steps the given progress record has completed"""
        if progress is None or not progress.phases:
            return 0
        total = self.total_steps()
        if total == 0:
            return 0
        completed = sum(
            1 for phase in progress.phases for step in phase["steps"] if step.get("completed")
        )
        return round(completed / total * 100)

    def roadmap_json(self):
        return {
            "id": self.roadmap_id,
            "title": self.title,
            "field": self.field,
            "level": self.level,
            "overview": self.overview,
            "phases": self.phases,
            "connections": self.connections,
            "metadata": self.roadmap_metadata,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "roadmap_json": self.roadmap_json(),
            "roadmap_doc": self.documentation,
            "status": self.status,
            "isPublic": self.is_public,
            "rating": {"average": self.rating_average, "count": self.rating_count},
            "workflowId": self.workflow_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "url": self.url,
        }


class RoadmapDocumentation(Base):
    """Markdown write-up produced alongside a generated roadmap"""
    __tablename__ = "roadmap_documentation"

    id = Column(Integer, primary_key=True, index=True)
    roadmap_pk = Column(Integer, ForeignKey("roadmaps.id", ondelete="CASCADE"), nullable=False, unique=True)
    roadmap_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    markdown_content = Column(Text, nullable=False)
    ai_model = Column(String)
    generated_at = Column(DateTime, default=datetime.utcnow)
    tokens = Column(JSON, default=dict)

    def to_dict(self):
        return {
            "id": self.id,
            "roadmapId": self.roadmap_id,
            "title": self.title,
            "markdownContent": self.markdown_content,
            "aiGeneration": {
                "model": self.ai_model,
                "generatedAt": self.generated_at.isoformat() if self.generated_at else None,
                "tokens": self.tokens or {},
            },
        }
