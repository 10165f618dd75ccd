import logging
import smtplib
from email.message import EmailMessage

from core.celery import celery_app
from core.config import settings

logger = logging.getLogger(__name__)


def deliver_email(to_email: str, subject: str, body: str) -> None:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.SMTP_FROM or settings.SMTP_USERNAME
    msg["To"] = to_email
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
        server.starttls()
        if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.send_message(msg)


@celery_app.task(bind=True, max_retries=3)
def send_email_task(self, to_email: str, subject: str, body: str):
    """
    Send a notification email from a worker.
    Retries up to 3 times with exponential backoff.
    """
    if settings.TESTING or not settings.SMTP_PASSWORD:
        logger.info("Email to %s skipped (no SMTP credentials): %s", to_email, subject)
        return {"status": "skipped", "to": to_email, "subject": subject}

    try:
        deliver_email(to_email, subject, body)
        logger.info("Email sent to %s: %s", to_email, subject)
        return {"status": "sent", "to": to_email, "subject": subject}
    except Exception as exc:
        logger.warning("Failed to send email to %s: %s", to_email, exc)
        countdown = min(2 ** self.request.retries, 60)  # Max 60 seconds
        raise self.retry(exc=exc, countdown=countdown)
