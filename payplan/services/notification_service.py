"""
Email notifications for payment events.

Messages go to an HTTP email relay. Delivery is best effort: callers commit
their state first and a failed or slow send is only logged.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

import httpx

from payplan.core.config import settings

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Sends payment emails through the configured relay."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.api_url = settings.EMAIL_API_URL if api_url is None else api_url
        self.api_key = settings.EMAIL_API_KEY if api_key is None else api_key
        self.sender = sender or settings.EMAIL_FROM
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS

    async def send(self, to: str, subject: str, body: str) -> None:
        """Post one message to the relay. Raises on transport or HTTP errors."""
        if not self.api_url:
            logger.info("Email relay not configured, skipping '%s' to %s", subject, to)
            return

        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.api_url,
                json={"from": self.sender, "to": to, "subject": subject, "text": body},
                headers=headers
            )
            response.raise_for_status()

    async def send_quietly(self, to: str, subject: str, body: str) -> bool:
        """
        Send without letting failures escape.

        Returns False and logs a warning when the relay errors or times out.
        """
        try:
            await asyncio.wait_for(self.send(to, subject, body), timeout=self.timeout)
            return True
        except Exception as exc:
            logger.warning("Notification '%s' to %s failed: %r", subject, to, exc)
            return False

    async def payment_approved(
        self,
        to: str,
        name: str,
        service_name: str,
        transaction_ref: str
    ) -> bool:
        return await self.send_quietly(
            to,
            f"Payment approved: {service_name}",
            f"Hi {name},\n\nYour payment for {service_name} "
            f"(transaction {transaction_ref}) has been approved."
        )

    async def service_enrolled(
        self,
        to: str,
        name: str,
        service_name: str,
        start_date: Optional[datetime],
        end_date: Optional[datetime]
    ) -> bool:
        window = ""
        if start_date and end_date:
            window = f" from {start_date:%Y-%m-%d} to {end_date:%Y-%m-%d}"
        return await self.send_quietly(
            to,
            f"You're enrolled: {service_name}",
            f"Hi {name},\n\nYour access to {service_name} is active{window}."
        )
