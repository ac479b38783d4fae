"""
Didit identity verification client - Implements IdentityProvider protocol.

Thin httpx wrapper over the provider's v2 session API. Transient
failures (network errors, 429, 5xx) are retried with exponential
backoff; everything else is mapped onto the domain error taxonomy:

    401/403          -> ConfigurationError (credentials rejected)
    404              -> NotFoundError (unknown or expired session)
    other non-2xx    -> UpstreamError(status_code, body)
    network, retried -> NetworkError
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from src.domain.exceptions import (
    ConfigurationError,
    NetworkError,
    NotFoundError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_DEFAULT_MAX_RETRIES = 3
_DEFAULT_RETRY_DELAY = 1.0
_BODY_LIMIT = 2000


def _retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class DiditClient:
    """Client for the Didit verification API.

    Docs: https://docs.didit.me
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://verification.didit.me/v2",
        timeout: float = _DEFAULT_TIMEOUT,
        max_retries: int = _DEFAULT_MAX_RETRIES,
        retry_delay: float = _DEFAULT_RETRY_DELAY,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.max_retries = max(max_retries, 1)
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"accept": "application/json"},
        )

    def create_session(
        self,
        workflow_id: str,
        vendor_data: str,
        callback_url: str,
        contact_details: dict[str, Any],
        expected_details: dict[str, Any],
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        """Create a verification session. POST /session/"""
        if not workflow_id:
            raise ConfigurationError("identity provider workflow is not configured")
        payload = {
            "workflow_id": workflow_id,
            "vendor_data": vendor_data,
            "callback": callback_url,
            "contact_details": {k: v for k, v in contact_details.items() if v is not None},
            "expected_details": {k: v for k, v in expected_details.items() if v is not None},
            "metadata": metadata,
        }
        return self._request("POST", "/session/", json_body=payload)

    def get_decision(self, session_id: str) -> dict[str, Any]:
        """Decision bundle for a session. GET /session/{id}/decision/"""
        return self._request("GET", f"/session/{session_id}/decision/")

    def update_status(self, session_id: str, new_status: str, comment: str | None = None) -> dict[str, Any]:
        """Administrative status change. PATCH /session/{id}/update-status/"""
        payload: dict[str, Any] = {"new_status": new_status}
        if comment:
            payload["comment"] = comment
        return self._request("PATCH", f"/session/{session_id}/update-status/", json_body=payload)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, json_body: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue a request with retry logic and typed error mapping."""
        if not self.api_key:
            raise ConfigurationError("identity provider API key is not configured")

        last_exc: Exception | None = None
        resp: httpx.Response | None = None

        for attempt in range(self.max_retries):
            try:
                resp = self._client.request(method, path, json=json_body, headers={"x-api-key": self.api_key})
            except httpx.RequestError as exc:
                last_exc = exc
                resp = None
                logger.warning(
                    "%s %s failed (attempt %d/%d): %s",
                    method, path, attempt + 1, self.max_retries, exc,
                )
            else:
                if not _retryable(resp.status_code):
                    break
                logger.warning(
                    "%s %s returned %d (attempt %d/%d)",
                    method, path, resp.status_code, attempt + 1, self.max_retries,
                )
            if attempt < self.max_retries - 1:
                self._sleep(self.retry_delay * 2**attempt)

        if resp is None:
            raise NetworkError(
                f"Failed to reach identity provider after {self.max_retries} attempts"
            ) from last_exc

        status_code = resp.status_code
        if status_code in (401, 403):
            raise ConfigurationError("identity provider rejected the API credentials")
        if status_code == 404:
            raise NotFoundError("session not found or expired")
        if not resp.is_success:
            raise UpstreamError(
                f"Identity provider returned HTTP {status_code}",
                status_code=status_code,
                body=resp.text[:_BODY_LIMIT],
            )

        if not resp.content:
            return {}
        try:
            data = resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise UpstreamError(
                "Non-JSON response from identity provider",
                status_code=status_code,
                body=resp.text[:_BODY_LIMIT],
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamError("Unexpected response shape", status_code=status_code, body=resp.text[:_BODY_LIMIT])
        return data
