"""SMTP mail adapter.

Builds an ``EmailMessage`` and delivers it with ``smtplib``, over SSL or
STARTTLS. The blocking SMTP conversation runs in a worker thread so the event
loop keeps serving requests meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage

from storefront.adapters.mail.base import AbstractMailer, MailMessage
from storefront.core.errors import NotificationAppError

logger = logging.getLogger(__name__)


class SmtpMailer(AbstractMailer):
    """Deliver notifications through an SMTP server."""

    def __init__(
        self,
        host: str,
        port: int = 465,
        username: str | None = None,
        password: str | None = None,
        use_ssl: bool = True,
        timeout_seconds: float = 10.0,
    ) -> None:
        """Initialize the SMTP mailer.

        Args:
            host: SMTP server host.
            port: SMTP server port (465 for SSL, usually 587 for STARTTLS).
            username: Login, if the server requires authentication.
            password: Password for username.
            use_ssl: Use implicit SSL; otherwise upgrade with STARTTLS.
            timeout_seconds: Socket timeout for the whole conversation.
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def build_email(message: MailMessage) -> EmailMessage:
        email = EmailMessage()
        email["Subject"] = message.subject
        email["From"] = message.sender
        email["To"] = message.recipient
        if message.reply_to:
            email["Reply-To"] = message.reply_to
        email.set_content(message.body)
        return email

    def _deliver(self, email: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self.use_ssl:
            smtp: smtplib.SMTP = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout_seconds, context=context
            )
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds)
        with smtp:
            if not self.use_ssl:
                smtp.starttls(context=context)
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(email)

    async def send(self, message: MailMessage) -> None:
        """Send the message.

        Raises:
            NotificationAppError: If the message cannot be encoded as an
                e-mail (e.g. CR/LF in a header value) or delivery fails.
        """
        try:
            email = self.build_email(message)
        except (ValueError, TypeError) as exc:
            raise NotificationAppError(
                code="mail_invalid_message",
                message="Notification e-mail could not be built",
                details={"hint": type(exc).__name__},
            ) from exc

        try:
            await asyncio.to_thread(self._deliver, email)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationAppError(
                code="mail_delivery_failed",
                message="Notification e-mail could not be delivered",
                details={"hint": type(exc).__name__},
            ) from exc

        logger.info(
            "mail.sent",
            extra={"smtp_host": self.host, "subject": message.subject},
        )
