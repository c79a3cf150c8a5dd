"""Mail adapter layer - abstracts over notification delivery backends."""

from storefront.adapters.mail.base import AbstractMailer, MailMessage
from storefront.adapters.mail.factory import create_mailer
from storefront.adapters.mail.log_mailer import LogMailer
from storefront.adapters.mail.smtp_mailer import SmtpMailer

__all__ = [
    "AbstractMailer",
    "LogMailer",
    "MailMessage",
    "SmtpMailer",
    "create_mailer",
]
