"""Contact form service: stores a visitor message and notifies the shop.

The accepted message is created as an entry in the CMS contact collection
first; if that fails the submission fails. The e-mail notification is sent
afterwards and is best-effort: a failed notification is logged and never
fails the submission.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from storefront.adapters.mail.base import AbstractMailer, MailMessage
from storefront.adapters.upstream.cms_client import CmsClient
from storefront.core.config import ContactSettings
from storefront.core.errors import NotificationAppError, UpstreamAppError
from storefront.core.logging import get_request_id
from storefront.schemas.contact import ContactMessage, ContactMessageInput


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _single_line(value: str) -> str:
    return " ".join(value.split())


def build_notification_body(message: ContactMessage) -> str:
    """Plain-text body of the notification sent to the shop mailbox."""

    return "\n".join(
        [
            "New enquiry from the website",
            "",
            f"Name: {message.name}",
            f"Phone: {message.phone}",
            f"Email: {message.email}",
            f"Subject: {message.subject}",
            "",
            "Message:",
            message.message or "(no message)",
            "",
            f"Sent from the website at {message.created_at.isoformat()}",
        ]
    )


class ContactService:
    """Turn contact form input into a stored message plus a notification."""

    def __init__(
        self,
        mailer: AbstractMailer,
        store: CmsClient,
        cfg: ContactSettings,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.mailer = mailer
        self.store = store
        self.cfg = cfg
        self._now = now

    def build_entry(self, payload: ContactMessageInput) -> dict[str, Any]:
        """Fields of the collection entry, with the default subject applied."""

        return {
            "name": payload.name,
            "phone": payload.phone,
            "email": str(payload.email),
            "subject": payload.subject or self.cfg.default_subject,
            "message": payload.message or "",
            "status": "new",
        }

    async def persist(self, entry: dict[str, Any]) -> ContactMessage:
        entity = await self.store.create_entry(self.cfg.store_path, entry)
        if entity.get("id") is None:
            raise UpstreamAppError(
                code="upstream_invalid_reply",
                message="Content service returned an entry without an id",
                details={"http_status": 502},
            )
        stored = {key: value for key, value in entity.items() if value is not None}
        try:
            return ContactMessage.model_validate(
                {**entry, "created_at": self._now(), **stored, "id": str(entity["id"])}
            )
        except ValidationError as exc:
            raise UpstreamAppError(
                code="upstream_invalid_reply",
                message="Content service returned an unexpected entry",
                details={"http_status": 502},
            ) from exc

    async def notify(self, message: ContactMessage) -> bool:
        """Mail the shop about message; returns False if delivery failed."""

        notification = MailMessage(
            sender=self.cfg.sender,
            recipient=self.cfg.recipient,
            subject=_single_line(f"New enquiry: {message.subject}"),
            body=build_notification_body(message),
            reply_to=str(message.email),
        )
        try:
            await self.mailer.send(notification)
        except NotificationAppError as exc:
            logger.error(
                "contact.notification_failed",
                extra={
                    "error_code": exc.code,
                    "contact_id": message.id,
                    "request_id": get_request_id(),
                },
            )
            return False
        return True

    async def submit(self, payload: ContactMessageInput) -> ContactMessage:
        """Store a submission, then send the notification.

        Args:
            payload: Validated contact form fields.

        Returns:
            The message as stored by the CMS.

        Raises:
            UpstreamAppError: If the message could not be stored.
        """

        message = await self.persist(self.build_entry(payload))
        notified = await self.notify(message)
        logger.info(
            "contact.accepted",
            extra={
                "contact_id": message.id,
                "notified": notified,
                "has_message": bool(message.message),
                "email": str(message.email),
            },
        )
        return message
