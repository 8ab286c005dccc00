"""
Automation Bridge Client - server/whatsapp/bridge.py

Provider client that drives a WhatsApp Web automation sidecar over HTTP.
The sidecar owns the browser and the LocalAuth credential directory; it
reports lifecycle events back through POST /webhooks/provider.

Sidecar contract:
    POST   {base}/sessions                         start {accountId, sessionDir, webhookUrl}
    DELETE {base}/sessions/{accountId}             stop
    POST   {base}/sessions/{accountId}/messages    send {chatId, content | media, options}
    GET    {base}/sessions/{accountId}/numbers/{n} resolve → {"chatId": "...@c.us"}

Usage:
    factory = bridge_provider_factory(settings)
    client = factory("alice", Path(".wwebjs_auth/session-alice"), listener)
    await client.initialize()
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from server.core.config import Settings
from server.core.errors import ProviderFailure
from server.core.monitoring import log_event, log_exception
from server.whatsapp.provider import (
    BaseProviderClient,
    EventListener,
    MediaPayload,
    MessageContent,
    ProviderFactory,
)

# Timeout for HTTP requests (in seconds)
HTTP_TIMEOUT = 30.0


def _json_body(response: httpx.Response) -> Any:
    """Decoded JSON body of a successful response, None when it is not JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        log_event(
            "provider_response_not_json",
            level="warning",
            status_code=response.status_code,
        )
        return None


def _error_message(response: httpx.Response) -> str:
    """Extract the sidecar's error text from a failed response."""
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


class BridgeProviderClient(BaseProviderClient):
    """Provider client backed by the automation sidecar's HTTP API."""

    def __init__(
        self,
        account_id: str,
        session_dir: Path,
        listener: EventListener,
        *,
        base_url: str,
        api_key: Optional[str] = None,
        webhook_url: Optional[str] = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        super().__init__(account_id, session_dir, listener)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session_url = f"{self.base_url}/sessions/{account_id}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        operation: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Issue a request, turning transport errors into ProviderFailure."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(
                    method, url, headers=self._headers(), json=json
                )
        except httpx.TimeoutException as e:
            log_exception(
                "provider_request_timeout", e,
                account_id=self.account_id, operation=operation,
            )
            raise ProviderFailure(f"Provider timed out during {operation}") from e
        except httpx.HTTPError as e:
            log_exception(
                "provider_request_failed", e,
                account_id=self.account_id, operation=operation,
            )
            raise ProviderFailure(f"Provider unreachable during {operation}: {e}") from e

    async def initialize(self) -> None:
        response = await self._request(
            "POST",
            f"{self.base_url}/sessions",
            "initialize",
            json={
                "accountId": self.account_id,
                "sessionDir": str(self.session_dir),
                "webhookUrl": self.webhook_url,
            },
        )
        if response.status_code not in (200, 201, 202):
            raise ProviderFailure(_error_message(response))

        log_event("provider_session_started", account_id=self.account_id)

    async def destroy(self) -> None:
        response = await self._request("DELETE", self.session_url, "destroy")
        # Already gone on the sidecar side is fine
        if response.status_code not in (200, 202, 204, 404):
            raise ProviderFailure(_error_message(response))

        log_event("provider_session_stopped", account_id=self.account_id)

    async def send_message(
        self,
        chat_id: str,
        content: MessageContent,
        options: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        payload: Dict[str, Any] = {"chatId": chat_id, "options": options or {}}
        if isinstance(content, MediaPayload):
            payload["media"] = content.to_dict()
        else:
            payload["content"] = content

        response = await self._request(
            "POST", f"{self.session_url}/messages", "send_message", json=payload
        )
        if response.status_code not in (200, 201):
            message = _error_message(response)
            log_event(
                "provider_send_failed",
                level="warning",
                account_id=self.account_id,
                status_code=response.status_code,
                error=message,
            )
            raise ProviderFailure(message)

        data = _json_body(response)
        return data.get("id") if isinstance(data, dict) else None

    async def get_number_id(self, number: str) -> Optional[str]:
        response = await self._request(
            "GET", f"{self.session_url}/numbers/{number}", "get_number_id"
        )
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ProviderFailure(_error_message(response))

        data = _json_body(response)
        return data.get("chatId") if isinstance(data, dict) else None


def bridge_provider_factory(settings: Settings) -> ProviderFactory:
    """Provider factory bound to the configured sidecar."""
    webhook_url = f"{settings.PUBLIC_BASE_URL}/webhooks/provider"

    def factory(
        account_id: str, session_dir: Path, listener: EventListener
    ) -> BridgeProviderClient:
        return BridgeProviderClient(
            account_id,
            session_dir,
            listener,
            base_url=settings.PROVIDER_BASE_URL,
            api_key=settings.PROVIDER_API_KEY,
            webhook_url=webhook_url,
            timeout=settings.PROVIDER_TIMEOUT,
        )

    return factory
