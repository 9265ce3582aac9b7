"""
Credentialed HTTP gateway to the payment provider's REST API.

A transparent tunnel: it attaches the server-held bearer credential, copies a
fixed allow-list of passthrough headers, forwards the method and (for non-read
methods) a JSON body, and returns the upstream status code and JSON body
verbatim. It never interprets payment semantics; provider clients and the
HTTP proxy route both sit on top of it.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional

import httpx

from core.logging_config import get_logger
from domain.payment.exceptions import CommunicationError, ConfigurationError


logger = get_logger(__name__)

READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


@dataclass
class GatewayResponse:
    """Upstream response, passed through unchanged"""
    status_code: int
    data: Any
    headers: Dict[str, str]
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400


class CredentialedGateway:
    """
    Provider gateway with credential injection

    One request in, one response out; no retries and no reinterpretation of
    status codes. Failures local to the gateway are raised as
    ConfigurationError (missing credential) or CommunicationError.
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str],
        *,
        timeouts: Optional[Mapping[str, float]] = None,
        passthrough_headers: Iterable[str] = ("X-Idempotency-Key", "X-Request-Id"),
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_agent: str = "POS-Terminal-Payments/1.0",
    ):
        """
        Args:
            base_url: provider API base URL
            access_token: bearer credential; may be None, checked on every call
            timeouts: connect/read/write/total seconds
            passthrough_headers: inbound headers copied to the upstream request
            transport: optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip('/')
        self._access_token = access_token
        self._timeouts_cfg = dict(timeouts or {"connect": 3.0, "read": 10.0, "write": 10.0, "total": 15.0})
        # Compared case-insensitively, forwarded with the configured spelling
        self._passthrough = {name.lower(): name for name in passthrough_headers}
        self._transport = transport
        self._user_agent = user_agent
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def has_credential(self) -> bool:
        return bool(self._access_token)

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """获取或创建HTTP客户端"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        """关闭HTTP客户端"""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _build_headers(self, inbound: Optional[Mapping[str, str]]) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self._user_agent,
        }
        for key, value in (inbound or {}).items():
            name = self._passthrough.get(key.lower())
            if name and value:
                headers[name] = value
        return headers

    async def forward(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> GatewayResponse:
        """
        Forward one request upstream.

        Args:
            method: HTTP method
            path: path relative to the provider base URL
            headers: inbound headers; only the allow-listed ones are forwarded
            body: JSON-serializable body, sent for non-read methods
            params: query parameters

        Raises:
            ConfigurationError: no credential configured (no upstream call made)
            CommunicationError: transport failure or non-JSON upstream body
        """
        method = method.upper()
        logger.info("gateway_credential_check", has_credential=self.has_credential, method=method, path=path)
        if not self.has_credential:
            logger.error("gateway_credential_missing", method=method, path=path)
            raise ConfigurationError()

        url = self._build_url(path)
        request_headers = self._build_headers(headers)
        content = None
        if method not in READ_METHODS and body is not None:
            content = json.dumps(body, default=str).encode("utf-8")

        start_time = datetime.now()
        try:
            response = await self.client.request(
                method=method,
                url=url,
                params=params,
                content=content,
                headers=request_headers,
            )
        except httpx.HTTPError as exc:
            logger.error("gateway_transport_error", method=method, path=path, error=str(exc), error_type=type(exc).__name__)
            raise CommunicationError(details={"error_type": type(exc).__name__}) from exc

        elapsed = (datetime.now() - start_time).total_seconds() * 1000

        # An empty body (e.g. 204) is passed through as null
        data = None
        if response.content:
            try:
                data = response.json()
            except ValueError as exc:
                logger.error("gateway_invalid_json", method=method, path=path, status_code=response.status_code)
                raise CommunicationError(
                    "Payment provider returned a non-JSON response",
                    status_code=response.status_code,
                ) from exc

        logger.info(
            "gateway_forward",
            method=method,
            path=path,
            status_code=response.status_code,
            elapsed_ms=round(elapsed, 2),
        )
        return GatewayResponse(
            status_code=response.status_code,
            data=data,
            headers=dict(response.headers),
            elapsed_ms=elapsed,
            request_id=response.headers.get("x-request-id"),
        )
