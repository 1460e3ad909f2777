from __future__ import annotations

"""HTTP client for the host monitoring API."""

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import MonitoringRequestError
from .kinds import MetricKind, descriptor_for

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
_FALLBACK_ERROR = "Request failed"


class MonitoringEnvelope(BaseModel):
    """``{success, message?, data}`` wrapper used by the monitoring API."""

    model_config = ConfigDict(extra="allow")

    success: bool = True
    message: str | None = None
    msg: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


@dataclass
class MonitoringCallResult:
    """Captured result of a monitoring API invocation."""

    status_code: int | None
    payload: Any | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and (self.status_code or 0) < 400


def error_message(payload: Any) -> str:
    if isinstance(payload, Mapping):
        for key in ("msg", "message"):
            value = payload.get(key)
            if value:
                return str(value)
    return _FALLBACK_ERROR


def parse_envelope(payload: Any) -> MonitoringEnvelope:
    """Normalise a response body into a :class:`MonitoringEnvelope`.

    Bodies without a ``success`` key are the payload itself and are wrapped
    as a successful envelope.
    """

    if not isinstance(payload, Mapping):
        raise MonitoringRequestError("monitoring API returned a non-object body")
    body = dict(payload)
    if "success" not in body:
        body = {"success": True, "data": body}
    try:
        return MonitoringEnvelope.model_validate(body)
    except ValidationError as exc:
        raise MonitoringRequestError(f"malformed monitoring envelope: {exc.error_count()} errors") from exc


class MonitoringClient:
    """Async client for ``monitoring/*`` endpoints of one or more hosts.

    ``host`` arguments are base URLs such as ``https://hv01:5001/api``. A
    single ``httpx.AsyncClient`` is created lazily and shared across hosts;
    pass ``transport`` to route requests elsewhere (``httpx.MockTransport``
    in tests).
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        verify_tls: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._verify = verify_tls
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: Any, *, transport: httpx.AsyncBaseTransport | None = None) -> "MonitoringClient":
        return cls(
            api_key=config.api_key,
            timeout=config.timeout_seconds,
            verify_tls=config.verify_tls,
            transport=transport,
        )

    def _build_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self._build_headers(),
                timeout=self._timeout,
                verify=self._verify,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _url(host: str, path: str) -> str:
        return host.rstrip("/") + "/" + path.lstrip("/")

    def _safe_json(self, resp: httpx.Response) -> Any | None:
        try:
            return resp.json()
        except ValueError:
            return None

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any | None = None,
    ) -> MonitoringCallResult:
        client = self._ensure_client()
        try:
            resp = await client.request(method, url, params=params, json=json)
        except httpx.HTTPError as exc:
            return MonitoringCallResult(status_code=None, error=str(exc) or type(exc).__name__)
        return MonitoringCallResult(status_code=resp.status_code, payload=self._safe_json(resp))

    def _unwrap(self, result: MonitoringCallResult, *, kind: str | None = None) -> MonitoringEnvelope:
        if result.error is not None:
            raise MonitoringRequestError(result.error, kind=kind)
        if not result.ok:
            raise MonitoringRequestError(
                f"{error_message(result.payload)} (HTTP {result.status_code})",
                kind=kind,
                status_code=result.status_code,
            )
        envelope = parse_envelope(result.payload)
        if not envelope.success:
            raise MonitoringRequestError(
                envelope.msg or envelope.message or _FALLBACK_ERROR,
                kind=kind,
                status_code=result.status_code,
            )
        return envelope

    async def query(
        self,
        host: str,
        kind: MetricKind,
        *,
        since: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch raw samples of ``kind`` recorded after ``since``.

        Raises :class:`MonitoringRequestError` on transport errors, HTTP error
        statuses, ``success: false`` and payloads without the sample array.
        """

        desc = descriptor_for(kind)
        params: dict[str, Any] = dict(desc.query_flags)
        if since is not None:
            params["since"] = since
        if limit is not None:
            params["limit"] = int(limit)
        result = await self._request("GET", self._url(host, desc.path), params=params)
        envelope = self._unwrap(result, kind=str(desc.kind))
        samples = envelope.data.get(desc.array_key, [])
        if not isinstance(samples, list):
            raise MonitoringRequestError(
                f"expected a list under {desc.array_key!r}", kind=str(desc.kind)
            )
        return [s for s in samples if isinstance(s, dict)]

    async def get_health(self, host: str) -> dict[str, Any]:
        """Fetch the collector health report."""

        result = await self._request("GET", self._url(host, "monitoring/health"))
        return self._unwrap(result).data

    async def get_status(self, host: str) -> dict[str, Any]:
        """Fetch collector status and statistics."""

        result = await self._request("GET", self._url(host, "monitoring/status"))
        return self._unwrap(result).data

    async def trigger_collection(self, host: str, type: str = "all") -> dict[str, Any]:
        """Ask the host to run a collection pass immediately."""

        result = await self._request(
            "POST", self._url(host, "monitoring/collect"), json={"type": type}
        )
        envelope = self._unwrap(result)
        logger.info("monitoring.collect.triggered", extra={"host": host, "type": type})
        return envelope.data


__all__ = [
    "MonitoringCallResult",
    "MonitoringClient",
    "MonitoringEnvelope",
    "error_message",
    "parse_envelope",
]
