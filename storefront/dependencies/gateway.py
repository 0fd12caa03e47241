from fastapi import Depends

from storefront.config import Settings, get_settings
from storefront.services.gateway_service import GatewayOrderBridge
from storefront.services.payment_service import PaymentVerifier


def get_gateway_bridge(settings: Settings = Depends(get_settings)) -> GatewayOrderBridge:
    return GatewayOrderBridge(settings)


def get_payment_verifier(settings: Settings = Depends(get_settings)) -> PaymentVerifier:
    return PaymentVerifier(settings)
