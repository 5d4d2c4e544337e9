"""Messaging gateway interface consumed by Caregate."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


class GatewayError(Exception):
    """Raised when the telephony provider rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GatewayNotConfiguredError(GatewayError):
    """Raised when provider credentials are missing."""


class GatewayTimeoutError(GatewayError):
    """Raised when the provider does not answer within the request timeout."""


@dataclass(frozen=True)
class DeliveryResult:
    """Provider acknowledgement for a text or call."""

    to_number: str
    status: str
    sid: str | None = None


class MessagingGateway(ABC):
    """Sends texts and places calls through a telephony provider.

    Implementations enforce their own request timeout and raise
    ``GatewayError`` subclasses on failure.
    """

    @abstractmethod
    async def send_text(self, to_number: str, body: str) -> DeliveryResult:
        """Send an SMS to ``to_number``."""

    @abstractmethod
    async def place_call(self, to_number: str) -> DeliveryResult:
        """Place a voice call to ``to_number``."""

    @property
    def is_configured(self) -> bool:
        return True

    async def close(self) -> None:
        """Release network resources. Default: nothing to do."""
