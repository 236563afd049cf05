from fastapi import APIRouter, Depends

from app.middleware.error_handler import error_response
from app.schemas.contact import ContactMessage, NewsletterSignup, FeedbackMessage
from app.services.mailer import (
    Mailer,
    MailDeliveryError,
    get_mailer,
    contact_admin_html,
    contact_auto_reply_html,
    newsletter_welcome_html,
    feedback_html,
)
from app.utils.logger import logger

router = APIRouter()


@router.post("/")
@router.post("", include_in_schema=False)
async def send_contact_message(
    body: ContactMessage,
    mailer: Mailer = Depends(get_mailer)
):
    """Forward a contact form message to the team and acknowledge the sender"""
    try:
        await mailer.send(
            mailer.admin_address,
            f"SkillSync Contact Form: {body.subject}",
            contact_admin_html(body.name, body.email, body.subject, body.message),
            reply_to=body.email,
        )
        await mailer.send(body.email, "Thank you for contacting SkillSync", contact_auto_reply_html(body.name))
    except MailDeliveryError as e:
        logger.error(f"[Contact] Contact form delivery failed: {e}")
        return error_response(500, "Failed to send message. Please try again later.")

    return {"success": True, "message": "Message sent successfully! We'll get back to you soon."}


@router.post("/newsletter")
async def subscribe_newsletter(
    body: NewsletterSignup,
    mailer: Mailer = Depends(get_mailer)
):
    try:
        await mailer.send(body.email, "Welcome to SkillSync Newsletter!", newsletter_welcome_html())
    except MailDeliveryError as e:
        logger.error(f"[Contact] Newsletter welcome delivery failed: {e}")
        return error_response(500, "Failed to subscribe to newsletter. Please try again later.")

    return {"success": True, "message": "Successfully subscribed to newsletter!"}


@router.post("/feedback")
async def submit_feedback(
    body: FeedbackMessage,
    mailer: Mailer = Depends(get_mailer)
):
    try:
        await mailer.send(
            mailer.admin_address,
            f"SkillSync Feedback: {body.rating}/5 stars",
            feedback_html(body.name, body.email, body.rating, body.feedback, body.category),
            reply_to=body.email,
        )
    except MailDeliveryError as e:
        logger.error(f"[Contact] Feedback delivery failed: {e}")
        return error_response(500, "Failed to submit feedback. Please try again later.")

    return {"success": True, "message": "Thank you for your feedback!"}
