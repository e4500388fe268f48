"""
Email sender factory.
Configures which delivery backend the notification dispatcher uses.
"""

from typing import Optional

from reconciler.core.config import get_settings
from reconciler.services.interfaces.email_sender import EmailSender
from reconciler.services.interfaces.logging_sender import LoggingEmailSender


def build_email_sender() -> EmailSender:
    """
    Build the configured sender.

    Selection via EMAIL_BACKEND:
    - logging: LoggingEmailSender (default, development)
    - http: HttpEmailSender (production)
    """
    backend = get_settings().EMAIL_BACKEND.lower()

    if backend == 'http':
        from reconciler.infrastructure.email_client import HttpEmailSender
        return HttpEmailSender()
    return LoggingEmailSender()


# Singleton instance
_sender: Optional[EmailSender] = None


def get_email_sender() -> EmailSender:
    """Get email sender singleton."""
    global _sender
    if _sender is None:
        _sender = build_email_sender()
    return _sender


async def close_email_sender() -> None:
    global _sender
    if _sender is not None:
        await _sender.close()
        _sender = None
