"""Factory pattern for creating mailer instances."""

from storefront.adapters.mail.base import AbstractMailer
from storefront.adapters.mail.log_mailer import LogMailer
from storefront.adapters.mail.smtp_mailer import SmtpMailer
from storefront.core.config import MailSettings
from storefront.core.errors import ValidationAppError


def create_mailer(cfg: MailSettings) -> AbstractMailer:
    """Instantiate the mail backend selected by configuration.

    Args:
        cfg: Mail settings (MAIL_* environment variables).

    Returns:
        AbstractMailer: Configured mailer.

    Raises:
        ValidationAppError: If backend-specific requirements are not met.
    """
    if cfg.backend == "log":
        return LogMailer()

    if cfg.backend == "smtp":
        if not cfg.host:
            raise ValidationAppError(
                code="mail_missing_host",
                message="SMTP mail backend requires MAIL_HOST",
            )
        return SmtpMailer(
            host=cfg.host,
            port=cfg.port,
            username=cfg.username,
            password=cfg.password,
            use_ssl=cfg.use_ssl,
            timeout_seconds=cfg.timeout_seconds,
        )

    raise ValidationAppError(
        code="mail_unknown_backend",
        message=f"Unknown mail backend: '{cfg.backend}'. Supported backends: log, smtp",
    )
