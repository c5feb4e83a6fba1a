import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Any, Dict

from config import get_settings

logger = logging.getLogger(__name__)


def notify_contact(contact: Dict[str, Any], recipient: str) -> bool:
    """Email the portfolio owner about a new contact message, if mail is configured."""
    settings = get_settings()
    if not (settings.EMAIL_USER and settings.EMAIL_PASS):
        return False

    msg = EmailMessage()
    msg["Subject"] = f"Portfolio Contact: {contact['name']}"
    msg["From"] = settings.EMAIL_USER
    msg["To"] = recipient or settings.EMAIL_USER
    msg["Reply-To"] = contact["email"]
    msg.set_content(
        f"New contact form submission\n\n"
        f"Name: {contact['name']}\n"
        f"Email: {contact['email']}\n\n"
        f"{contact['message']}\n\n"
        f"Submitted at: {datetime.utcnow().isoformat(timespec='seconds')}Z\n"
    )

    try:
        with smtplib.SMTP_SSL(settings.EMAIL_HOST, settings.EMAIL_PORT, timeout=30) as smtp:
            smtp.login(settings.EMAIL_USER, settings.EMAIL_PASS)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("Contact notification email failed: %s", exc)
        return False
    return True
