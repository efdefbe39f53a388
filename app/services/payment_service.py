"""
Client for the external payment provider.

The provider owns the whole checkout; we only ask it for a checkout page for
a booking and hand the URL to the guest.
"""
import logging
from decimal import Decimal
from typing import Optional

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Checkout could not be created."""


class PaymentService:
    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.api_url = api_url if api_url is not None else settings.payment_api_url
        self.api_key = api_key if api_key is not None else settings.payment_api_key
        self.timeout = timeout or settings.payment_timeout_seconds

    @staticmethod
    def to_cents(amount: Decimal) -> int:
        return int((Decimal(amount) * 100).quantize(Decimal("1")))

    def create_checkout(self, booking_id: int, amount: Decimal) -> dict:
        """
        Create a checkout for a booking.

        Args:
            booking_id: our booking id, echoed back by the provider
            amount: total price in currency units

        Returns:
            Dict with 'url' (redirect for the guest) and 'reference' (may be None)
        """
        if not self.api_url:
            raise PaymentError("Payment provider is not configured")

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        logger.info(f"Creating checkout for booking #{booking_id} ({amount})")

        try:
            response = requests.post(
                self.api_url,
                json={"bookingId": booking_id, "amount": self.to_cents(amount)},
                headers=headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.HTTPError as e:
            body = e.response.text if e.response is not None else "No response"
            logger.error(f"Payment provider HTTP error: {e}; body: {body}")
            raise PaymentError(str(e)) from e
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Payment provider request failed: {e}")
            raise PaymentError(str(e)) from e

        if not data.get("url"):
            logger.error(f"No checkout url in payment response: {data}")
            raise PaymentError("Payment provider returned no checkout url")

        return {"url": data["url"], "reference": data.get("id") or data.get("sessionId")}


payment_service = PaymentService()
