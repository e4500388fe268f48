"""
Outbound email interface.
Rendering and delivery belong to the external email collaborator; the
engine only hands it a template name and a JSON-safe context.
"""

from abc import ABC, abstractmethod

from reconciler.schemas.notification import OutboundEmail


class EmailSender(ABC):
    """
    Interface for email delivery backends.

    Implementations:
    - LoggingEmailSender: Logs the request, delivers nothing (development)
    - HttpEmailSender: POSTs the request to the email service
    """

    @abstractmethod
    async def send(self, message: OutboundEmail) -> None:
        """
        Hand one message to the email collaborator.

        Raises on failure; the dispatcher decides what a failure means.
        """
        pass

    async def close(self) -> None:
        """Release transport resources, if any."""
        pass
