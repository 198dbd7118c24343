"""Outbound notifications (Flask-Mail)."""
from __future__ import annotations

from typing import Optional

from flask import current_app
from flask_mail import Message

from extensions import mail


def send_billing_alert(subject: str, body: str, recipient: Optional[str] = None) -> bool:
    """Email the billing team. Returns False when disabled or on SMTP failure."""
    recipient = recipient or current_app.config.get("BILLING_ALERT_EMAIL")
    if not recipient or not current_app.config.get("MAIL_SERVER"):
        current_app.logger.info("Billing alert not emailed (mail not configured): %s", subject)
        return False
    msg = Message(
        subject=subject,
        sender=current_app.config.get("MAIL_DEFAULT_SENDER"),
        recipients=[recipient],
        body=body,
    )
    try:
        mail.send(msg)
    except Exception:
        current_app.logger.exception("Failed to send billing alert: %s", subject)
        return False
    return True
