"""Twilio REST implementation of the messaging gateway."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from caregate.gateway.base import (
    DeliveryResult,
    GatewayError,
    GatewayNotConfiguredError,
    GatewayTimeoutError,
    MessagingGateway,
)

if TYPE_CHECKING:
    from caregate.config import TwilioConfig

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.twilio.com/2010-04-01"
DEFAULT_VOICE_URL = "http://demo.twilio.com/docs/voice.xml"


class TwilioGateway(MessagingGateway):
    """Sends SMS and places calls with the Twilio REST API.

    Example:
        gateway = TwilioGateway("AC123", "token", "+15550001111")
        await gateway.send_text("+15552223333", "Hello")
        await gateway.close()
    """

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None,
        api_base: str = DEFAULT_API_BASE,
        voice_url: str = DEFAULT_VOICE_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Twilio gateway.

        Args:
            account_sid: Twilio account SID
            auth_token: Twilio auth token
            from_number: Twilio phone number messages are sent from
            api_base: REST API base URL
            voice_url: TwiML document played when a call connects
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_base = api_base.rstrip("/")
        self.voice_url = voice_url
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: TwilioConfig) -> TwilioGateway:
        return cls(
            account_sid=config.account_sid,
            auth_token=config.auth_token.get_secret_value() if config.auth_token else None,
            from_number=config.from_number,
            api_base=config.api_base,
            voice_url=config.voice_url,
            timeout=config.timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.api_base}/Accounts/{self.account_sid}",
                auth=(self.account_sid or "", self.auth_token or ""),
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def send_text(self, to_number: str, body: str) -> DeliveryResult:
        result = await self._post(
            "/Messages.json",
            {"From": self.from_number, "To": to_number, "Body": body},
            to_number,
        )
        logger.info(f"SMS queued to {to_number} (sid={result.sid})")
        return result

    async def place_call(self, to_number: str) -> DeliveryResult:
        result = await self._post(
            "/Calls.json",
            {"From": self.from_number, "To": to_number, "Url": self.voice_url},
            to_number,
        )
        logger.info(f"Call initiated to {to_number} (sid={result.sid})")
        return result

    async def _post(self, path: str, data: dict[str, Any], to_number: str) -> DeliveryResult:
        if not self.is_configured:
            raise GatewayNotConfiguredError("Twilio is not configured")

        try:
            response = await self._get_client().post(path, data=data)
        except httpx.TimeoutException as e:
            raise GatewayTimeoutError(f"Twilio request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Twilio request failed: {e}") from e

        payload = self._json(response)
        if response.is_error:
            message = payload.get("message") or f"HTTP {response.status_code}"
            raise GatewayError(f"Twilio rejected request: {message}", response.status_code)

        return DeliveryResult(
            to_number=to_number,
            status=str(payload.get("status", "queued")),
            sid=payload.get("sid"),
        )

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
