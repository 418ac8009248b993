"""
Notification senders invoked after a booking has been committed.

Delivery itself (email, SMS) lives outside the scheduling core; these
adapters either log the event or hand it to a webhook that does the delivery.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import requests

from ..domain.models import BookingResult

logger = logging.getLogger(__name__)

BOOKING_REQUESTED = "booking.requested"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_DECLINED = "booking.declined"


class NotificationSender(Protocol):
    """Protocol describing what the booking service needs from a notifier."""

    def notify_client(self, event: str, result: BookingResult) -> None:
        """Tell the booked contact about ``event``."""

    def notify_contractor(self, event: str, result: BookingResult, email: str) -> None:
        """Tell the tenant's contractor about ``event``."""


def build_payload(event: str, result: BookingResult, recipient: Optional[str]) -> Dict[str, Any]:
    """Serialise a booking event into the JSON body sent to delivery services."""
    job = result.primary_job
    return {
        "event": event,
        "recipient": recipient,
        "tenant_id": job.tenant_id,
        "service_name": result.service.name if result.service else None,
        "contact_name": result.contact.full_name if result.contact else None,
        "booking": result.to_dict(),
    }


class LoggingNotifier:
    """Notifier that only records events in the application log."""

    def notify_client(self, event: str, result: BookingResult) -> None:
        email = result.contact.email if result.contact else None
        if not email:
            logger.info("No client email for job %s, skipping %s", result.primary_job.id, event)
            return
        logger.info("Client notification %s for job %s -> %s", event, result.primary_job.id, email)

    def notify_contractor(self, event: str, result: BookingResult, email: str) -> None:
        logger.info(
            "Contractor notification %s for job %s -> %s", event, result.primary_job.id, email
        )


class WebhookNotifier:
    """
    Posts booking events to an HTTP endpoint that performs the delivery.
    """

    def __init__(self, webhook_url: str, timeout_seconds: float = 10.0):
        """
        Initialize the webhook notifier.

        Args:
            webhook_url: Endpoint receiving the JSON event payloads
            timeout_seconds: Request timeout per event
        """
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self.headers = {"Content-Type": "application/json"}

    def notify_client(self, event: str, result: BookingResult) -> None:
        email = result.contact.email if result.contact else None
        if not email:
            logger.info("No client email for job %s, skipping %s", result.primary_job.id, event)
            return
        self._post(build_payload(event, result, email))

    def notify_contractor(self, event: str, result: BookingResult, email: str) -> None:
        self._post(build_payload(event, result, email))

    def _post(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one payload.

        Raises:
            RuntimeError: If the webhook cannot be reached or rejects the event
        """
        try:
            response = requests.post(
                self.webhook_url,
                headers=self.headers,
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Failed to deliver {payload['event']} notification: {e}") from e
