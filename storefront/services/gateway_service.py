import logging
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import razorpay
import requests

from storefront.config import Settings
from storefront.errors import ConfigurationError, GatewayError, InvalidAmount

logger = logging.getLogger(__name__)


def to_minor_units(amount: float) -> int:
    """Rupees to paise, rounding half up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_amount(amount: Optional[float]) -> int:
    """Minor units of a positive, finite amount; InvalidAmount otherwise."""
    if amount is None or not math.isfinite(amount) or amount <= 0:
        raise InvalidAmount()
    return to_minor_units(amount)


def razorpay_client_for(settings: Settings) -> razorpay.Client:
    if not settings.razorpay_key_id or not settings.razorpay_key_secret:
        raise ConfigurationError("Razorpay credentials not configured")
    return razorpay.Client(auth=(settings.razorpay_key_id, settings.razorpay_key_secret))


class GatewayOrderBridge:
    """Creates the gateway-side order that the hosted checkout pays against."""

    def __init__(self, settings: Settings, client: Optional[razorpay.Client] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> razorpay.Client:
        if self._client is None:
            self._client = razorpay_client_for(self.settings)
        return self._client

    def create_order(
        self,
        amount: Optional[float],
        receipt: str,
        currency: Optional[str] = None,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload = {
            "amount": validate_amount(amount),
            "currency": currency or self.settings.currency,
            "receipt": receipt,
            "notes": {k: str(v) for k, v in (notes or {}).items()},
        }

        logger.info(
            "Creating Razorpay order: receipt=%s amount=%s currency=%s",
            receipt, payload["amount"], payload["currency"],
        )

        try:
            data = self.client.order.create(payload)
        except (
            razorpay.errors.BadRequestError,
            razorpay.errors.GatewayError,
            razorpay.errors.ServerError,
        ) as exc:
            logger.error("Razorpay API error for receipt %s: %s", receipt, exc)
            raise GatewayError(str(exc) or "Failed to create Razorpay order") from exc
        except requests.RequestException as exc:
            logger.error("Razorpay unreachable for receipt %s: %s", receipt, exc)
            raise GatewayError("Failed to create Razorpay order") from exc

        logger.info("Razorpay order created successfully: %s", data["id"])

        return {
            "order_id": data["id"],
            "amount": data["amount"],
            "currency": data["currency"],
            "receipt": data.get("receipt"),
        }
