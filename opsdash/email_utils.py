"""Simple email sending utilities (SMTP)."""
import logging
import smtplib
from email.message import EmailMessage

from opsdash.config.settings import Settings

logger = logging.getLogger(__name__)


def build_message(to_email: str, subject: str, html_body: str, text_body: str = None) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = Settings.EMAIL_FROM or Settings.SMTP_USER
    msg["To"] = to_email
    msg.set_content(text_body or "This message requires an HTML capable mail client.")
    msg.add_alternative(html_body, subtype="html")
    return msg


def send_email(to_email: str, subject: str, html_body: str, text_body: str = None) -> bool:
    """Send an HTML email through the configured SMTP relay.

    Returns True on success, False otherwise (failures are logged).
    """
    if not Settings.SMTP_HOST or not Settings.SMTP_USER or not Settings.SMTP_PASSWORD:
        logger.warning("SMTP not configured - skipping email to %s", to_email)
        return False

    try:
        msg = build_message(to_email, subject, html_body, text_body)
        with smtplib.SMTP(Settings.SMTP_HOST, Settings.SMTP_PORT, timeout=10) as server:
            server.starttls()
            server.login(Settings.SMTP_USER, Settings.SMTP_PASSWORD)
            server.send_message(msg)
        logger.info("Email sent to %s via %s:%s", to_email, Settings.SMTP_HOST, Settings.SMTP_PORT)
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Error sending email to %s: %s", to_email, e)
        return False
