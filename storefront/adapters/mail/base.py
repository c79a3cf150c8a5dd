from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class MailMessage:
	"""Plain-text notification ready for delivery."""

	sender: str
	recipient: str
	subject: str
	body: str
	reply_to: str | None = None


class AbstractMailer(ABC):
	"""Interface for backends that deliver notification e-mails."""

	@abstractmethod
	async def send(self, message: MailMessage) -> None:
		"""Deliver a message.

		Args:
			message: Fully built message (addresses, subject, body).

		Raises:
			NotificationAppError: If the backend could not deliver the message.
		"""
		...
