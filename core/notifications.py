# core/notifications.py
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import List, Optional

from core.config import settings
from core.logging_config import logger
from models.account import Account


# -----------------------------------------------------
# 📧 Send email (SMTP)
# -----------------------------------------------------
def send_email(
    subject: str,
    body: str,
    recipients: List[str],
    html_body: Optional[str] = None,
) -> bool:
    """
    Send email via SMTP. Returns False (and logs) instead of raising:
    notifications never decide the outcome of a request.
    """
    smtp_host = settings.SMTP_HOST
    smtp_port = settings.SMTP_PORT
    smtp_user = settings.SMTP_USER
    smtp_pass = settings.SMTP_PASS

    recipient_list = [r for r in recipients if r]
    if not recipient_list:
        logger.warning("No recipients specified — skipping email.")
        return False

    if not all([smtp_host, smtp_port, smtp_user, smtp_pass]):
        logger.warning("Email credentials missing — skipping email.")
        return False

    try:
        msg = MIMEMultipart("alternative")
        msg["From"] = settings.SMTP_FROM or smtp_user
        msg["To"] = ", ".join(recipient_list)
        msg["Subject"] = subject

        msg.attach(MIMEText(body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP_SSL(smtp_host, smtp_port) as server:
            server.login(smtp_user, smtp_pass)
            server.send_message(msg)

        logger.info(f"Email sent to {', '.join(recipient_list)}")
        return True

    except Exception as e:
        logger.warning(f"Email send failed: {e}")
        return False


# -----------------------------------------------------
# Lifecycle messages
# -----------------------------------------------------
def notify_signup(account: Account) -> bool:
    if account.requires_admin_approval:
        body = f"""
Hello {account.name},

Your registration has been received and is waiting for admin approval.
You will be able to log in once an administrator has reviewed it.

Member ID: {account.member_id}
"""
    else:
        body = f"""
Hello {account.name},

Your registration has been verified and your account is active.
You can log in now.

Member ID: {account.member_id}
"""
    return send_email("Registration received", body, [account.email])


def notify_approved(account: Account) -> bool:
    body = f"""
Hello {account.name},

Your account has been approved by an administrator. You can log in now.
"""
    return send_email("Account approved", body, [account.email])


def notify_rejected(account: Account) -> bool:
    body = f"""
Hello {account.name},

Your registration was not approved.

Reason: {account.rejection_reason or "No reason provided"}

You may sign up again with corrected details, or contact an administrator.
"""
    return send_email("Account not approved", body, [account.email])
