from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable

import httpx

from outbox.core.errors import TransportError
from outbox.queues.base import HttpMethod


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: Any  # parsed JSON when the server says so, else text

    elapsed_ms: int | None = None


@runtime_checkable
class Transport(Protocol):
    """
    Sends one record's payload to one endpoint with one verb.
    Raises TransportError when no response could be obtained.
    """

    async def request(
        self,
        *,
        base_url: str,
        endpoint: str,
        path_suffix: str,
        method: HttpMethod,
        headers: Mapping[str, str],
        body: Mapping[str, Any] | None,
        timeout: float,
    ) -> TransportResponse:
        ...

    async def aclose(self) -> None:
        ...


def _is_json_response(resp: httpx.Response) -> bool:
    ct = (resp.headers.get("content-type") or "").lower()
    return "application/json" in ct or ct.endswith("+json")


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


class SyncHttpClient:
    """
    httpx transport shared by every queue in a cycle.

    - One AsyncClient instance (connection pooling).
    - No retries here; the delivery engine owns the retry policy.
    - Status codes are returned as-is; only the engine knows a queue's success set.
    """

    def __init__(
        self,
        *,
        max_response_body_chars: int = 20_000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._max_body = max_response_body_chars
        self._client = httpx.AsyncClient(transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        *,
        base_url: str,
        endpoint: str,
        path_suffix: str,
        method: HttpMethod,
        headers: Mapping[str, str],
        body: Mapping[str, Any] | None,
        timeout: float,
    ) -> TransportResponse:
        url = f"{base_url}{endpoint}{path_suffix}"
        json_body = dict(body) if (body is not None and method != "GET") else None

        try:
            resp = await self._client.request(
                method=method,
                url=url,
                headers=dict(headers),
                json=json_body,
                timeout=httpx.Timeout(timeout),
            )
        except httpx.TimeoutException as e:
            raise TransportError(str(e) or "timeout", kind="timeout") from e
        except httpx.ConnectError as e:
            raise TransportError(str(e) or "connect failed", kind="connect") from e
        except (httpx.RemoteProtocolError, httpx.DecodingError) as e:
            raise TransportError(str(e) or "protocol error", kind="protocol") from e
        except httpx.RequestError as e:
            # DNS errors, TLS, too many redirects, etc.
            raise TransportError(str(e) or type(e).__name__, kind="request_error") from e

        parsed: Any
        if _is_json_response(resp):
            try:
                parsed = resp.json()
            except ValueError:
                parsed = _cap_text(resp.text, max_chars=self._max_body)
        else:
            parsed = _cap_text(resp.text, max_chars=self._max_body)

        try:
            elapsed_ms = int(resp.elapsed.total_seconds() * 1000)
        except RuntimeError:
            # elapsed is only set once the response stream is closed
            elapsed_ms = None

        return TransportResponse(status_code=resp.status_code, body=parsed, elapsed_ms=elapsed_ms)
