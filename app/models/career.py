from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Float, ForeignKey, Table, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base

career_related_careers = Table(
    "career_related_careers",
    Base.metadata,
    Column("career_id", Integer, ForeignKey("careers.id", ondelete="CASCADE"), primary_key=True),
    Column("related_career_id", Integer, ForeignKey("careers.id", ondelete="CASCADE"), primary_key=True),
)

career_learning_paths = Table(
    "career_learning_paths",
    Base.metadata,
    Column("career_id", Integer, ForeignKey("careers.id", ondelete="CASCADE"), primary_key=True),
    Column("learning_path_id", Integer, ForeignKey("learning_paths.id", ondelete="CASCADE"), primary_key=True),
)


class Career(Base):
    """Catalog entry describing a career and what it takes to get there"""
    __tablename__ = "careers"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False, index=True)

    # [{"name": "Python", "level": "intermediate"}]
    required_skills = Column(JSON, nullable=False, default=list)

    salary_min = Column(Integer, nullable=False)
    salary_max = Column(Integer, nullable=False)
    salary_currency = Column(String(3), default='USD')

    job_outlook = Column(String, nullable=False)
    education_level = Column(String, nullable=False)
    experience_level = Column(String, nullable=False)
    work_environment = Column(String, nullable=False)
    growth_rate = Column(Float, nullable=False)  # -100..100

    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    related_careers = relationship(
        "Career",
        secondary=career_related_careers,
        primaryjoin=id == career_related_careers.c.career_id,
        secondaryjoin=id == career_related_careers.c.related_career_id,
        lazy="selectin",
        join_depth=1,
    )
    learning_paths = relationship(
        "LearningPath",
        secondary=career_learning_paths,
        back_populates="related_careers",
        lazy="selectin",
    )

    def summary(self):
        return {"id": self.id, "title": self.title, "category": self.category, "description": self.description}

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "requiredSkills": self.required_skills or [],
            "salaryRange": {
                "min": self.salary_min,
                "max": self.salary_max,
                "currency": self.salary_currency,
            },
            "jobOutlook": self.job_outlook,
            "educationLevel": self.education_level,
            "experienceLevel": self.experience_level,
            "workEnvironment": self.work_environment,
            "growthRate": self.growth_rate,
            "relatedCareers": [c.summary() for c in self.related_careers],
            "learningPaths": [p.summary() for p in self.learning_paths],
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
