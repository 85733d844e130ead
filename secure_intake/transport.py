# secure_intake/transport.py
"""
Secure Intake Transport

The core hands one serialized outer object to a transport and classifies
the (status, body) it gets back. Timeouts and connection handling belong
to the transport, not the core.

Collector response body (recognized paths):
    {"ok": true,  "id": "<hex>", "status": "created" | "duplicate"}
    {"ok": false, "error": "<message>", "retryable": <bool, optional>}

Usage:
    transport = HttpxTransport(timeout=15.0)
    response = await transport.post(url, body, {"Content-Type": "application/json"})
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx

JSON_HEADERS = {"Content-Type": "application/json"}


# =============================================================================
# Response
# =============================================================================

@dataclass
class TransportResponse:
    status: int
    body: bytes = b""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    def json(self) -> Optional[Dict[str, Any]]:
        """Parsed JSON object body, or None if absent or not an object."""
        if not self.body:
            return None
        try:
            data = json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return None
        return data if isinstance(data, dict) else None


# =============================================================================
# HTTP Transport
# =============================================================================

class HTTPTransport(ABC):
    """Abstract HTTP transport for collector submissions."""

    @abstractmethod
    async def post(self, url: str, data: bytes, headers: Dict[str, str]) -> TransportResponse:
        """Send POST request and return status and body."""
        pass


class HttpxTransport(HTTPTransport):
    """httpx-backed transport. Network errors propagate as httpx exceptions."""

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self._timeout = timeout
        self._client = client

    async def post(self, url: str, data: bytes, headers: Dict[str, str]) -> TransportResponse:
        if self._client is not None:
            response = await self._client.post(url, content=data, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, content=data, headers=headers)
        return TransportResponse(status=response.status_code, body=response.content)


class MockHTTPTransport(HTTPTransport):
    """Mock HTTP transport for testing."""

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self._response_queue: List[Union[TransportResponse, Exception]] = []

    def queue_response(self, status: int, body: Union[bytes, Dict[str, Any], None] = None) -> None:
        """Queue a response; dict bodies are JSON-encoded."""
        if isinstance(body, dict):
            body = json.dumps(body).encode()
        self._response_queue.append(TransportResponse(status=status, body=body or b""))

    def queue_error(self, error: Exception) -> None:
        """Queue an exception raised from post()."""
        self._response_queue.append(error)

    async def post(self, url: str, data: bytes, headers: Dict[str, str]) -> TransportResponse:
        """Record request and return queued response."""
        self.requests.append({
            "url": url,
            "data": data,
            "headers": headers,
        })
        if self._response_queue:
            item = self._response_queue.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        # Default: created, echoing the submitted id
        sent = json.loads(data.decode())
        return TransportResponse(
            status=201,
            body=json.dumps({"ok": True, "id": sent.get("id"), "status": "created"}).encode(),
        )
