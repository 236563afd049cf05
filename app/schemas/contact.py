from typing import Optional
from pydantic import EmailStr, Field

from app.schemas import CamelModel


class ContactMessage(CamelModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=10)


class NewsletterSignup(CamelModel):
    email: EmailStr


class FeedbackMessage(CamelModel):
    name: str = Field(..., min_length=2)
    email: EmailStr
    rating: int = Field(..., ge=1, le=5)
    feedback: str = Field(..., min_length=10)
    category: Optional[str] = None
