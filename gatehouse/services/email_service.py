"""Service for sending account emails."""

import logging
import smtplib
from email.mime.text import MIMEText
from typing import Optional
from urllib.parse import urlencode

from gatehouse.domain.errors import NotificationError

logger = logging.getLogger(__name__)


class EmailService:
    """Delivers verification links over SMTP.

    When SMTP is not configured nothing is sent; development instances
    return the tokens in the API replies instead.
    """

    def __init__(
        self,
        base_url: str,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_username: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "Gatehouse",
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout
        self.enabled = bool(self.smtp_host and self.smtp_username and self.from_email)

    def send_new_user_verification(self, email: str, username: str, token: str) -> None:
        link = self._link("/user/verify", email=email, verificationtoken=token)
        body = (
            f"Hello {username},\n\n"
            "Sign the token below with your identity key and open the link to verify your account.\n\n"
            f"{link}\n\n"
            "If you did not create this account you can ignore this email.\n"
        )
        self._send(email, "Verify your account", body)

    def send_reset_password(self, email: str, token: str) -> None:
        link = self._link("/user/password/reset", email=email, verificationtoken=token)
        body = (
            "A password reset was requested for your account.\n\n"
            f"{link}\n\n"
            "If you did not request this you can ignore this email.\n"
        )
        self._send(email, "Reset your password", body)

    def send_update_key_verification(self, email: str, public_key: str, token: str) -> None:
        link = self._link("/user/key/verify", verificationtoken=token)
        body = (
            f"A new identity key was requested for your account:\n\n{public_key}\n\n"
            f"Sign the token with the new key to activate it:\n\n{link}\n"
        )
        self._send(email, "Verify your new identity", body)

    def send_user_locked(self, email: str, token: Optional[str]) -> None:
        link = None
        if token:
            link = self._link("/user/password/reset", email=email, verificationtoken=token)
        body = "Your account was locked after too many failed login attempts.\n"
        if link:
            body += f"\nReset your password to unlock it:\n\n{link}\n"
        self._send(email, "Your account is locked", body)

    def send_password_changed(self, email: str) -> None:
        body = (
            "The password for your account was changed.\n\n"
            "If you did not make this change, reset your password immediately.\n"
        )
        self._send(email, "Your password was changed", body)

    def _link(self, path: str, **params: str) -> str:
        return f"{self.base_url}{path}?{urlencode(params)}"

    def _send(self, to_email: str, subject: str, body: str) -> None:
        if not self.enabled:
            logger.info("Email disabled; not sending %r to %s", subject, to_email)
            return

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"cannot send {subject!r} to {to_email}: {exc}") from exc
