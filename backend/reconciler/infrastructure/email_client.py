"""
HttpEmailSender: delivers outbound booking emails by POSTing them as JSON
to the transactional email service. Transport and HTTP status failures
surface as NotificationError; the dispatcher logs those and moves on.
"""

from typing import Optional

import httpx

from reconciler.core.config import get_settings
from reconciler.core.exceptions import NotificationError
from reconciler.core.logging import get_logger
from reconciler.schemas.notification import OutboundEmail
from reconciler.services.interfaces.email_sender import EmailSender

logger = get_logger(__name__)


class HttpEmailSender(EmailSender):
    """POSTs each outbound message as JSON to the email service."""

    def __init__(
        self,
        url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.url = url or settings.EMAIL_SERVICE_URL
        token = token if token is not None else settings.EMAIL_SERVICE_TOKEN
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.EMAIL_TIMEOUT_SECONDS,
            headers=headers,
        )

    async def send(self, message: OutboundEmail) -> None:
        try:
            response = await self._client.post(self.url, json=message.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"email service rejected {message.kind.value} for {message.to}: {e}") from e
        logger.info(
            "email_submitted",
            kind=message.kind.value,
            to=message.to,
            status_code=response.status_code,
        )

    async def close(self) -> None:
        await self._client.aclose()
