"""Email notifier — invitation and welcome messages.

The notifier is built once from settings (API lifespan, worker startup) and
passed into whatever needs it. ``send`` reports failure with ``False`` and
never raises: onboarding never fails because an email did not go out.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from enum import StrEnum

from homestead.core.config import Settings

logger = logging.getLogger(__name__)


class NotificationKind(StrEnum):
    INVITATION = "invitation"
    WELCOME = "welcome"


def compose_message(kind: NotificationKind, payload: dict) -> tuple[str, str]:
    """Return (subject, plain-text body) for a notification."""
    name = f"{payload.get('first_name', '')} {payload.get('last_name', '')}".strip()
    property_name = payload.get("property_name") or "your property"
    unit_number = payload.get("unit_number") or "N/A"

    if kind == NotificationKind.INVITATION:
        subject = f"Welcome to {property_name} - Complete Your Account Setup"
        body = (
            f"Hello {name},\n\n"
            f"{payload.get('landlord_name') or 'Your property manager'} has invited you to "
            f"the tenant portal for {property_name}, Unit {unit_number}.\n\n"
            f"Verify your invitation and create your account:\n"
            f"{payload.get('verification_url', '')}\n\n"
            f"This invitation expires on {payload.get('expires_at', '')}.\n"
        )
    else:
        subject = f"Welcome to {property_name} - Your Account is Ready!"
        body = (
            f"Hello {name},\n\n"
            f"Your account for {property_name}, Unit {unit_number} has been created.\n\n"
            f"Sign in to your portal: {payload.get('login_url', '')}\n"
        )
    return subject, body


class Notifier:
    """Base notifier. Subclasses implement ``_deliver``."""

    async def open(self) -> None:
        """Acquire transport resources."""

    async def close(self) -> None:
        """Release transport resources."""

    async def send(self, kind: NotificationKind | str, payload: dict) -> bool:
        try:
            kind = NotificationKind(kind)
            to_email = payload["email"]
            subject, body = compose_message(kind, payload)
            await self._deliver(to_email, subject, body)
        except Exception:
            logger.warning(
                "Notification %s to %s failed", kind, payload.get("email"), exc_info=True
            )
            return False
        logger.info("Sent %s notification to %s", kind, to_email)
        return True

    async def _deliver(self, to_email: str, subject: str, body: str) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Used when email sending is disabled — logs what would have been sent."""

    async def _deliver(self, to_email: str, subject: str, body: str) -> None:
        logger.info("Email sending disabled. Would send %r to %s", subject, to_email)


class SmtpNotifier(Notifier):
    """SMTP delivery over one reused connection, opened lazily."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        from_email: str,
        from_name: str = "",
        timeout: float = 30,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_addr = f"{from_name} <{from_email}>" if from_name else from_email
        self.timeout = timeout
        self._smtp: smtplib.SMTP | None = None
        self._lock = asyncio.Lock()

    async def close(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._disconnect)

    async def _deliver(self, to_email: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.from_addr
        message["To"] = to_email
        message.set_content(body)

        # smtplib blocks; keep it off the event loop and one send at a time
        async with self._lock:
            await asyncio.to_thread(self._send_blocking, message)

    def _send_blocking(self, message: EmailMessage) -> None:
        try:
            self._connection().send_message(message)
        except smtplib.SMTPServerDisconnected:
            self._smtp = None
            self._connection().send_message(message)

    def _connection(self) -> smtplib.SMTP:
        if self._smtp is None:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            self._smtp = smtp
        return self._smtp

    def _disconnect(self) -> None:
        if self._smtp is None:
            return
        try:
            self._smtp.quit()
        except (smtplib.SMTPException, OSError):
            logger.debug("SMTP quit failed", exc_info=True)
        finally:
            self._smtp = None


def build_notifier(settings: Settings) -> Notifier:
    if not settings.send_emails:
        return LogNotifier()
    return SmtpNotifier(
        settings.smtp_host,
        settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_email=settings.from_email,
        from_name=settings.from_name,
    )
