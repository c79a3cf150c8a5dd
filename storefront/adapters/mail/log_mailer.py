"""Mailer that records notifications in the application log."""

import logging

from storefront.adapters.mail.base import AbstractMailer, MailMessage

logger = logging.getLogger(__name__)


class LogMailer(AbstractMailer):
    """Development backend: nothing leaves the process."""

    async def send(self, message: MailMessage) -> None:
        logger.info(
            "mail.logged",
            extra={
                "recipient": message.recipient,
                "subject": message.subject,
                "reply_to": message.reply_to,
                "body_chars": len(message.body),
            },
        )
