"""
Transport gateways for push, SMS and email.

Each channel is served by one gateway implementing TransportGateway.

Gateways:
    HttpGateway: JSON POST to a provider endpoint over aiohttp
    LogGateway: Development gateway that only logs the message

HTTP response mapping:
    - 200: accepted and delivered
    - other 2xx: accepted, delivery pending (status "sent")
    - 4xx/5xx, client errors, timeouts: TransportError

Request body:
    {
        "channel": "sms",
        "to": "+15550100",
        "message": "...",
        "correlation_id": "<alert id>",
        "subject": "...",          # email only
        "from": "noreply@..."      # email only
    }
"""

import asyncio
import os
import time
from typing import Any, Dict, Optional

import aiohttp
import structlog

from carewatch.config.models import GatewayConfig, GatewayProvider, NotificationsConfig
from carewatch.errors import TransportError
from carewatch.interfaces.collaborators import GatewayResult, TransportGateway
from carewatch.models.notifications import NotificationChannel

logger = structlog.get_logger(__name__)


class HttpGateway:
    """
    Gateway posting messages to an HTTP provider.

    Attributes:
        channel: Channel this gateway serves.
        endpoint: Provider URL.
        timeout_seconds: Per-request timeout.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        from_email: Optional[str] = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            channel: Channel this gateway serves.
            endpoint: Provider URL.
            api_key: Bearer token for the provider, if required.
            timeout_seconds: Per-request timeout.
            from_email: Sender address for email.
        """
        self.channel = channel
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self.from_email = from_email
        self._api_key = api_key
        self._session: Optional[aiohttp.ClientSession] = None

        logger.info(
            "http_gateway_initialized",
            channel=channel.value,
            endpoint=endpoint,
            authenticated=api_key is not None,
        )

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure aiohttp session is created."""
        if self._session is None or self._session.closed:
            headers = {"User-Agent": "carewatch/0.1"}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                headers=headers,
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("http_gateway_session_closed", channel=self.channel.value)

    def _build_payload(
        self, contact: str, message: str, correlation_id: str, subject: Optional[str]
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "channel": self.channel.value,
            "to": contact,
            "message": message,
            "correlation_id": correlation_id,
        }
        if self.channel == NotificationChannel.EMAIL:
            payload["subject"] = subject or ""
            if self.from_email:
                payload["from"] = self.from_email
        return payload

    async def send(
        self,
        contact: str,
        message: str,
        correlation_id: str,
        subject: Optional[str] = None,
    ) -> GatewayResult:
        """
        Post one message to the provider.

        Raises:
            TransportError: If the provider rejects the message or is unreachable.
        """
        session = await self._ensure_session()
        payload = self._build_payload(contact, message, correlation_id, subject)
        started = time.perf_counter()

        try:
            async with session.post(self.endpoint, json=payload) as response:
                latency_ms = (time.perf_counter() - started) * 1000

                if response.status >= 400:
                    error_text = await response.text()
                    logger.warning(
                        "gateway_request_rejected",
                        channel=self.channel.value,
                        status=response.status,
                        correlation_id=correlation_id,
                        error=error_text[:200],
                    )
                    raise TransportError(
                        f"{self.channel.value} provider returned {response.status}: {error_text[:200]}"
                    )

                message_id: Optional[str] = None
                try:
                    body = await response.json(content_type=None)
                    if isinstance(body, dict):
                        raw_id = body.get("message_id") or body.get("id")
                        message_id = str(raw_id) if raw_id is not None else None
                except ValueError:
                    # Body is optional
                    message_id = None

                return GatewayResult(
                    accepted=True,
                    delivered=response.status == 200,
                    latency_ms=latency_ms,
                    provider_message_id=message_id,
                )

        except aiohttp.ClientError as e:
            logger.warning(
                "gateway_client_error",
                channel=self.channel.value,
                correlation_id=correlation_id,
                error=str(e),
            )
            raise TransportError(f"{self.channel.value} request failed: {e}") from e
        except asyncio.TimeoutError as e:
            logger.warning(
                "gateway_timeout",
                channel=self.channel.value,
                correlation_id=correlation_id,
                timeout=self.timeout_seconds,
            )
            raise TransportError(
                f"{self.channel.value} request timeout after {self.timeout_seconds}s"
            ) from e


class LogGateway:
    """Gateway that logs messages instead of sending them."""

    def __init__(self, channel: NotificationChannel) -> None:
        self.channel = channel

    async def send(
        self,
        contact: str,
        message: str,
        correlation_id: str,
        subject: Optional[str] = None,
    ) -> GatewayResult:
        """Log the message and report it delivered."""
        logger.info(
            "notification_logged",
            channel=self.channel.value,
            contact=contact,
            correlation_id=correlation_id,
            subject=subject,
            message=message,
        )
        return GatewayResult(accepted=True, delivered=True, latency_ms=0.0)

    async def close(self) -> None:
        """Nothing to release."""
        return None


def build_gateway(
    channel: NotificationChannel,
    config: GatewayConfig,
    from_email: Optional[str] = None,
) -> TransportGateway:
    """
    Build the gateway configured for a channel.

    The API key is read from the environment variable named by api_key_env.
    """
    if config.provider == GatewayProvider.HTTP and config.endpoint:
        api_key = os.getenv(config.api_key_env) if config.api_key_env else None
        return HttpGateway(
            channel=channel,
            endpoint=config.endpoint,
            api_key=api_key,
            timeout_seconds=config.timeout_seconds,
            from_email=from_email if channel == NotificationChannel.EMAIL else None,
        )
    return LogGateway(channel)


def build_gateways(config: NotificationsConfig) -> Dict[NotificationChannel, TransportGateway]:
    """
    Build one gateway per channel from configuration.

    Channels without configuration get a LogGateway.
    """
    return {
        channel: build_gateway(
            channel, config.get_gateway(channel.value), config.delivery.from_email
        )
        for channel in NotificationChannel
    }
