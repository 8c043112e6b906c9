"""
Mail Service

Delivers password reset links over SMTP.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
from urllib.parse import urlencode

from .. import config
from ..errors import ServiceError

logger = logging.getLogger(__name__)

RESET_SUBJECT = "Reset your Pathway Admin password"


def reset_link(token: str, base_url: Optional[str] = None) -> str:
    base = base_url or config.PASSWORD_RESET_URL
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{urlencode({'token': token})}"


class ResetMailer:
    """Sends the reset link for a freshly issued token."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
    ):
        self.host = host if host is not None else config.SMTP_HOST
        self.port = port or config.SMTP_PORT
        self.user = user if user is not None else config.SMTP_USER
        self.password = password if password is not None else config.SMTP_PASSWORD
        self.sender = sender or config.SMTP_FROM

    def build_message(self, email: str, token: str) -> MIMEMultipart:
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = email
        msg["Subject"] = RESET_SUBJECT

        body = f"""A password reset was requested for {email}.

Open the link below to choose a new password. It expires in {config.PASSWORD_RESET_EXPIRE_MINUTES} minutes
and can be used once.

{reset_link(token)}

If you did not ask for this, you can ignore this email."""
        msg.attach(MIMEText(body, "plain"))
        return msg

    def send_password_reset(self, email: str, token: str) -> None:
        """Raises ServiceError when SMTP is not configured or the send fails."""
        if not self.host:
            logger.error("SMTP_HOST not set, cannot send password reset email")
            raise ServiceError("Password reset email is not available. Please contact support.")

        msg = self.build_message(email, token)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=20) as server:
                server.ehlo()
                server.starttls()
                server.ehlo()
                if self.user:
                    server.login(self.user, self.password)
                server.sendmail(self.sender, [email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send password reset email to {email}: {e}")
            raise ServiceError("Failed to send password reset email. Please try again.") from e

        logger.info(f"Password reset email sent to {email}")
