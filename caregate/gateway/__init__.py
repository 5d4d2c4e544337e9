"""Messaging gateways for caregiver alerts and user communications."""

from caregate.gateway.base import (
    DeliveryResult,
    GatewayError,
    GatewayNotConfiguredError,
    GatewayTimeoutError,
    MessagingGateway,
)
from caregate.gateway.twilio import TwilioGateway

__all__ = [
    "DeliveryResult",
    "GatewayError",
    "GatewayNotConfiguredError",
    "GatewayTimeoutError",
    "MessagingGateway",
    "TwilioGateway",
]
