#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Relay Client - HTTP access to the policy table render relay.

Wraps httpx.AsyncClient for the generate, status and register endpoints
and maps transport and HTTP failures onto the policy_jobs error taxonomy.
"""

from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import ValidationError as PayloadValidationError

from config.logging_config import get_logger
from config.constants import (
    RELAY_BASE_URL,
    RELAY_TIMEOUT_SECONDS,
    GENERATE_PATH,
    STATUS_PATH,
    REGISTER_PATH,
)

from .errors import (
    ConflictError,
    MalformedResponseError,
    RegistrationError,
    RelayRequestError,
    TransientTransportError,
)
from .models import JobRequest, JobStatus
from .wire_models import GenerateResponse, RegisterResponse, StatusResponse

logger = get_logger(__name__)

HeadersProvider = Callable[[], Dict[str, str]]


class PolicyTableRelayClient:
    """
    Async client for the render relay.

    Error mapping:
    - timeouts, connection errors, HTTP 5xx and 429 -> TransientTransportError
    - HTTP 409 on generate -> ConflictError (carries existingJobId)
    - any other 4xx -> RelayRequestError
    - 2xx body that fails validation -> MalformedResponseError (transient)

    Usage:
        async with PolicyTableRelayClient(base_url, headers=settings.identity_headers) as relay:
            response = await relay.generate(request)
            status = await relay.get_status(response.job_id)
    """

    def __init__(
        self,
        base_url: str = RELAY_BASE_URL,
        timeout: float = RELAY_TIMEOUT_SECONDS,
        headers: Optional[HeadersProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Relay API root, e.g. https://host/api
            timeout: Per-request timeout in seconds
            headers: Callable returning per-request identity headers
            http_client: Optional pre-built client (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._headers = headers or (lambda: {})
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def __aenter__(self) -> "PolicyTableRelayClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def generate(self, request: JobRequest) -> GenerateResponse:
        """
        Submit a generation request.

        Raises:
            ConflictError: an equivalent job is already in flight
            TransientTransportError: timeout, connection error, 5xx or 429
            RelayRequestError: request rejected
        """
        response = await self._request("POST", GENERATE_PATH, json=request.to_payload())
        body = self._json(response)

        if response.status_code == 409:
            conflict = self._parse(GenerateResponse, body)
            existing = conflict.existing_job_id or conflict.job_id
            if not existing:
                raise RelayRequestError("Conflict response without existingJobId", status_code=409)
            raise ConflictError(existing, payload=body)

        self._raise_for_status(response, body)
        parsed = self._parse(GenerateResponse, body)
        if not parsed.job_id:
            raise RelayRequestError("Generate response without jobId", status_code=response.status_code)
        return parsed

    async def get_status(self, job_id: str) -> JobStatus:
        """Fetch and normalize the current status of a job."""
        path = STATUS_PATH.format(job_id=job_id)
        response = await self._request("GET", path)
        body = self._json(response)
        self._raise_for_status(response, body)
        return self._parse(StatusResponse, body).to_domain(job_id)

    async def register(self, artifact_id: str) -> RegisterResponse:
        """Publish a rendered artifact. Returns whether it was already published."""
        path = REGISTER_PATH.format(artifact_id=artifact_id)
        response = await self._request("POST", path, json={})
        body = self._json(response)
        self._raise_for_status(response, body)
        parsed = self._parse(RegisterResponse, body)
        if parsed.success is False:
            raise RegistrationError(artifact_id, parsed.error or parsed.message or "Registration rejected")
        return parsed

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise TransientTransportError(f"Timeout calling {method} {path}: {e}") from e
        except httpx.TransportError as e:
            raise TransientTransportError(f"Transport error calling {method} {path}: {e}") from e
        logger.debug(f"{method} {path} -> {response.status_code}")
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _raise_for_status(response: httpx.Response, body: Dict[str, Any]):
        code = response.status_code
        if code < 400:
            return
        message = body.get("error") or body.get("message") or f"HTTP {code}"
        if code >= 500 or code == 429:
            raise TransientTransportError(f"HTTP {code}: {message}", status_code=code)
        raise RelayRequestError(f"HTTP {code}: {message}", status_code=code)

    @staticmethod
    def _parse(model, body: Dict[str, Any]):
        try:
            return model.model_validate(body)
        except PayloadValidationError as e:
            raise MalformedResponseError(f"Malformed relay response: {e}") from e
