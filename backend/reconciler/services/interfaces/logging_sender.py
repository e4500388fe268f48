"""
Logging email sender - no delivery.
"""

from reconciler.core.logging import get_logger
from reconciler.schemas.notification import OutboundEmail
from reconciler.services.interfaces.email_sender import EmailSender

logger = get_logger(__name__)


class LoggingEmailSender(EmailSender):
    """
    Logs every request instead of delivering it.

    Use when:
    - Local development
    - No email service is reachable
    """

    async def send(self, message: OutboundEmail) -> None:
        logger.info(
            "email_logged",
            kind=message.kind.value,
            to=message.to,
            subject=message.subject,
            template=message.template,
        )
