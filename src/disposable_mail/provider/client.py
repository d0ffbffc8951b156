"""Disposable mailbox provider client.

The provider exposes a single endpoint with two actions:

- ``?action=generate`` returns ``{success, result: {email}}``
- ``?action=inbox&email=...`` returns ``{success, result: {inbox: [...]}}``

Every request is bounded by the configured timeout. Timeouts raise
`NetworkTimeout`; transport errors, non-2xx statuses, bodies that are not a
JSON object and ``success: false`` raise `NetworkFailure`. Failed requests are
retried only when `Settings.max_retries` is above zero.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from disposable_mail.config import Settings
from disposable_mail.exceptions import NetworkError, NetworkFailure, NetworkTimeout
from disposable_mail.models import RemoteMessage
from disposable_mail.provider.parsing import parse_generate_response, parse_inbox_response
from disposable_mail.utils import retry_async

logger = structlog.get_logger()


class MailboxProviderClient:
    """Async client for the remote disposable mailbox provider."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_delay: float = 1.0,
    ) -> None:
        """Initialize the provider client.

        Args:
            settings: Application settings. If None, uses default settings.
            transport: Optional httpx transport (tests pass a MockTransport).
            retry_delay: Initial delay between retries when retries are enabled.
        """
        from disposable_mail.config import get_settings

        self.settings = settings or get_settings()
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.request_timeout),
            transport=transport,
        )
        self._get_json = retry_async(
            max_retries=self.settings.max_retries,
            delay=retry_delay,
            retry_on=(NetworkError,),
        )(self._get_json_once)
        logger.info(
            "provider_client_initialized",
            base_url=self.settings.provider_base_url,
            timeout=self.settings.request_timeout,
            max_retries=self.settings.max_retries,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> MailboxProviderClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def generate_address(self) -> str:
        """Ask the provider for a fresh disposable address.

        Returns:
            The new email address.

        Raises:
            NetworkTimeout: If the request timed out.
            NetworkFailure: If the request failed or the response was unusable.
        """

        data = await self._get_json({"action": "generate"})
        email = parse_generate_response(data)
        logger.info("provider_address_generated", email=email)
        return email

    async def fetch_inbox(self, address: str) -> list[RemoteMessage]:
        """Fetch the provider-side inbox of `address`, in provider order.

        Raises:
            NetworkTimeout: If the request timed out.
            NetworkFailure: If the request failed or the response was unusable.
        """

        data = await self._get_json({"action": "inbox", "email": address})
        items = parse_inbox_response(data)
        logger.info("provider_inbox_fetched", address=address, item_count=len(items))
        return items

    async def _get_json_once(self, params: dict[str, str]) -> dict[str, Any]:
        action = params.get("action")
        try:
            response = await self._http.get(self.settings.provider_base_url, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("provider_request_timeout", action=action, timeout=self.settings.request_timeout)
            raise NetworkTimeout(f"Provider {action} request timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("provider_request_failed", action=action, error=str(exc))
            raise NetworkFailure(f"Provider {action} request failed: {exc}") from exc

        if not response.is_success:
            logger.warning("provider_bad_status", action=action, status_code=response.status_code)
            raise NetworkFailure(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkFailure(f"Provider {action} response is not JSON") from exc

        if not isinstance(data, dict):
            raise NetworkFailure(f"Provider {action} response is not a JSON object")
        return data
