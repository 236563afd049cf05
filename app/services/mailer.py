"""SMTP delivery for the contact, newsletter and feedback forms"""
import html
import smtplib
from email.message import EmailMessage
from typing import Optional

from starlette.concurrency import run_in_threadpool

from app.config import Settings, get_settings
from app.utils.logger import logger

SMTP_TIMEOUT_SECONDS = 12


class MailDeliveryError(Exception):
    pass


class Mailer:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    @property
    def admin_address(self) -> str:
        return self.settings.smtp_user

    def _send(self, to: str, subject: str, html_body: str, reply_to: Optional[str] = None) -> None:
        s = self.settings
        if not (s.smtp_host and s.smtp_user and s.smtp_password):
            raise MailDeliveryError("SMTP settings are missing")

        msg = EmailMessage()
        msg["From"] = s.smtp_user
        msg["To"] = to
        msg["Subject"] = subject
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content("This message requires an HTML capable mail client.")
        msg.add_alternative(html_body, subtype="html")

        try:
            if s.smtp_port == 465:
                with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                    server.login(s.smtp_user, s.smtp_password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                    server.starttls()
                    server.login(s.smtp_user, s.smtp_password)
                    server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(str(e)) from e

    async def send(self, to: str, subject: str, html_body: str, reply_to: Optional[str] = None) -> None:
        await run_in_threadpool(self._send, to, subject, html_body, reply_to)
        logger.info(f"[Mail] Sent '{subject}'")


def get_mailer() -> Mailer:
    """FastAPI dependency"""
    return Mailer()


def _paragraphs(text: str) -> str:
    return html.escape(text).replace("\n", "<br>")


def _wrap(body: str) -> str:
    return f'<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">{body}</div>'


def contact_admin_html(name: str, email: str, subject: str, message: str) -> str:
    return _wrap(
        '<h2 style="color: #2563EB;">New Contact Form Submission</h2>'
        f"<p><strong>Name:</strong> {html.escape(name)}</p>"
        f"<p><strong>Email:</strong> {html.escape(email)}</p>"
        f"<p><strong>Subject:</strong> {html.escape(subject)}</p>"
        f"<p><strong>Message:</strong></p><div>{_paragraphs(message)}</div>"
        '<p style="color: #666; font-size: 14px;">This message was sent from the SkillSync contact form.</p>'
    )


def contact_auto_reply_html(name: str) -> str:
    return _wrap(
        '<h2 style="color: #2563EB;">Thank you for reaching out!</h2>'
        f"<p>Hi {html.escape(name)},</p>"
        "<p>We've received your message and will get back to you as soon as possible. "
        "Our team typically responds within 24 hours.</p>"
        "<p>Best regards,<br>The SkillSync Team</p>"
    )


def newsletter_welcome_html() -> str:
    return _wrap(
        '<h2 style="color: #2563EB;">Welcome to SkillSync!</h2>'
        "<p>Thank you for subscribing to our newsletter. You'll now receive:</p>"
        "<ul><li>Weekly career tips and insights</li><li>New learning path announcements</li>"
        "<li>Industry trends and updates</li></ul>"
        "<p>Best regards,<br>The SkillSync Team</p>"
    )


def feedback_html(name: str, email: str, rating: int, feedback: str, category: Optional[str]) -> str:
    category_line = f"<p><strong>Category:</strong> {html.escape(category)}</p>" if category else ""
    return _wrap(
        '<h2 style="color: #2563EB;">New Feedback Submission</h2>'
        f"<p><strong>Name:</strong> {html.escape(name)}</p>"
        f"<p><strong>Email:</strong> {html.escape(email)}</p>"
        f"<p><strong>Rating:</strong> {rating}/5 stars</p>"
        f"{category_line}"
        f"<p><strong>Feedback:</strong></p><div>{_paragraphs(feedback)}</div>"
    )
