from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base
import bcrypt

FIELDS_OF_STUDY = ('computer-science', 'engineering', 'business', 'medicine', 'arts', 'science', 'other')
GOAL_STATUSES = ('planned', 'in-progress', 'completed')
GOAL_PRIORITIES = ('low', 'medium', 'high')


def _iso(value):
    return value.isoformat() if value else None


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String, unique=True, nullable=False, index=True)
    password = Column(String, nullable=False)  # bcrypt hash
    field = Column(String, nullable=False)

    # Profile
    bio = Column(String(500), default='')
    location = Column(String, default='')
    phone = Column(String, default='')
    linkedin = Column(String, default='')
    github = Column(String, default='')
    website = Column(String, default='')

    # User metadata
    is_active = Column(Boolean, default=True)
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    skills = relationship("UserSkill", back_populates="user", cascade="all, delete-orphan", order_by="UserSkill.id")
    goals = relationship("UserGoal", back_populates="user", cascade="all, delete-orphan", order_by="UserGoal.id")
    course_progress = relationship("CourseProgress", back_populates="user", cascade="all, delete-orphan", order_by="CourseProgress.id")

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt"""
        return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=10)).decode('utf-8')

    def check_password(self, password: str) -> bool:
        """Verify a password against the stored hash"""
        try:
            return bcrypt.checkpw(password.encode('utf-8'), self.password.encode('utf-8'))
        except ValueError:
            return False

    @classmethod
    def create_user(cls, name: str, email: str, password: str, field: str):
        """Factory method to create a user with a hashed password"""
        return cls(
            name=name.strip(),
            email=email.lower(),
            password=cls.hash_password(password),
            field=field,
            bio='', location='', phone='', linkedin='', github='', website='',
            is_active=True,
        )

    def find_skill(self, name: str):
        lowered = name.lower()
        return next((s for s in self.skills if s.name.lower() == lowered), None)

    def average_skill_level(self) -> float:
        if not self.skills:
            return 0.0
        return sum(s.level for s in self.skills) / len(self.skills)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "field": self.field,
            "bio": self.bio,
            "location": self.location,
            "phone": self.phone,
            "linkedin": self.linkedin,
            "github": self.github,
            "website": self.website,
            "skills": [s.to_dict() for s in self.skills],
            "goals": [g.to_dict() for g in self.goals],
            "progress": [p.to_dict() for p in self.course_progress],
            "isActive": self.is_active,
            "lastLogin": _iso(self.last_login),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class UserSkill(Base):
    __tablename__ = "user_skills"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    level = Column(Integer, nullable=False, default=0)  # 0-100
    category = Column(String, nullable=False)

    user = relationship("User", back_populates="skills")

    def to_dict(self):
        return {"id": self.id, "name": self.name, "level": self.level, "category": self.category}


class UserGoal(Base):
    __tablename__ = "user_goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    target_date = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default='planned')
    priority = Column(String, nullable=False, default='medium')
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="goals")

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "targetDate": _iso(self.target_date),
            "status": self.status,
            "priority": self.priority,
            "createdAt": _iso(self.created_at),
        }


class CourseProgress(Base):
    """Self-reported progress on an external course"""
    __tablename__ = "course_progress"
    __table_args__ = (UniqueConstraint("user_id", "course_id", name="uq_course_progress_user_course"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(String, nullable=False)
    course_name = Column(String, nullable=False)
    progress_percent = Column(Integer, nullable=False, default=0)  # 0-100
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime)

    user = relationship("User", back_populates="course_progress")

    def to_dict(self):
        return {
            "id": self.id,
            "courseId": self.course_id,
            "courseName": self.course_name,
            "progressPercent": self.progress_percent,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
        }
