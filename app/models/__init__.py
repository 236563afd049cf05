# Database models package
from app.models.user import User, UserSkill, UserGoal, CourseProgress
from app.models.career import Career
from app.models.learning_path import LearningPath, Course
from app.models.roadmap import Roadmap, RoadmapDocumentation
from app.models.user_progress import UserProgress

__all__ = [
    "User",
    "UserSkill",
    "UserGoal",
    "CourseProgress",
    "Career",
    "LearningPath",
    "Course",
    "Roadmap",
    "RoadmapDocumentation",
    "UserProgress",
]
