from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, Float, ForeignKey, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
from app.models.career import career_learning_paths


class LearningPath(Base):
    """Curated sequence of courses toward a skill area"""
    __tablename__ = "learning_paths"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False, index=True)
    difficulty = Column(String, nullable=False)
    estimated_duration = Column(Integer, nullable=False)  # weeks
    total_hours = Column(Integer, nullable=False)
    prerequisites = Column(JSON, default=list)
    learning_outcomes = Column(JSON, default=list)
    target_audience = Column(String, nullable=False)

    is_active = Column(Boolean, default=True, index=True)
    popularity = Column(Integer, default=0, index=True)
    rating_average = Column(Float, default=0.0)  # 0-5
    rating_count = Column(Integer, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    courses = relationship("Course", back_populates="learning_path", cascade="all, delete-orphan",
                           order_by="Course.id", lazy="selectin")
    related_careers = relationship("Career", secondary=career_learning_paths,
                                   back_populates="learning_paths", lazy="selectin")

    def add_rating(self, rating: int) -> None:
        """Fold one rating into the running average (rounded to one decimal)"""
        if rating < 1 or rating > 5:
            raise ValueError("Rating must be between 1 and 5")
        count = (self.rating_count or 0) + 1
        average = ((self.rating_average or 0) * (self.rating_count or 0) + rating) / count
        self.rating_average = round(average, 1)
        self.rating_count = count

    def summary(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "difficulty": self.difficulty,
            "estimatedDuration": self.estimated_duration,
            "totalHours": self.total_hours,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "difficulty": self.difficulty,
            "estimatedDuration": self.estimated_duration,
            "totalHours": self.total_hours,
            "courses": [c.to_dict() for c in self.courses],
            "prerequisites": self.prerequisites or [],
            "learningOutcomes": self.learning_outcomes or [],
            "targetAudience": self.target_audience,
            "relatedCareers": [
                {"id": c.id, "title": c.title, "category": c.category} for c in self.related_careers
            ],
            "isActive": self.is_active,
            "popularity": self.popularity,
            "rating": {"average": self.rating_average, "count": self.rating_count},
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    learning_path_id = Column(Integer, ForeignKey("learning_paths.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    duration = Column(Float, nullable=False)  # hours
    difficulty = Column(String, nullable=False)
    type = Column(String, nullable=False)
    url = Column(String, nullable=False)
    is_free = Column(Boolean, default=True)
    prerequisites = Column(JSON, default=list)

    learning_path = relationship("LearningPath", back_populates="courses")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "duration": self.duration,
            "difficulty": self.difficulty,
            "type": self.type,
            "url": self.url,
            "isFree": self.is_free,
            "prerequisites": self.prerequisites or [],
        }
