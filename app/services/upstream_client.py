"""
Upstream admin API client and list adapter.

The upstream backend returns full lists (no server-side paging or
filtering), usually wrapped in a {code, msg, data} envelope. Paging,
search, filters and sorting happen locally in the table engine.
"""

import logging
from typing import Any, Callable, Dict, Optional

import httpx

from app.config import get_settings
from app.core.exceptions import ApiError
from smarttable.query_state import TableQuery
from smarttable.types import ListResult

settings = get_settings()
logger = logging.getLogger(__name__)

SUCCESS_CODE = 200


def is_api_envelope(payload: Any) -> bool:
    return (
        isinstance(payload, dict)
        and isinstance(payload.get("code"), int)
        and isinstance(payload.get("msg"), str)
        and "data" in payload
    )


def unwrap_api_response(payload: Any, status: Optional[int] = None) -> Any:
    """Return the envelope's data, raising BIZ_ERROR for a non-200 code."""
    if not is_api_envelope(payload):
        return payload
    if payload["code"] != SUCCESS_CODE:
        raise ApiError(
            payload["msg"] or "Request failed",
            "BIZ_ERROR",
            status=status,
            biz_code=payload["code"],
        )
    return payload["data"]


def from_server_list_response(payload: Any) -> ListResult:
    """
    Normalize an upstream list response.

    Accepted shapes:
        1) a bare array
        2) an envelope whose data is one of these shapes
        3) an object carrying the array in data / list / records / rows
    Anything else is an empty result. `total` is always the list length.
    """
    if is_api_envelope(payload):
        return from_server_list_response(unwrap_api_response(payload))

    if isinstance(payload, list):
        return ListResult(list=payload, total=len(payload))

    if isinstance(payload, dict):
        for name in ("data", "list", "records", "rows"):
            rows = payload.get(name)
            if isinstance(rows, list):
                return ListResult(list=rows, total=len(rows))

    return ListResult.empty()


def _server_message(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        for name in ("msg", "message"):
            if isinstance(data.get(name), str) and data[name]:
                return data[name]
    return None


def to_api_error(error: httpx.HTTPError) -> ApiError:
    """Map an httpx failure to an ApiError code."""
    if isinstance(error, httpx.TimeoutException):
        return ApiError("Request timed out", "TIMEOUT")

    if not isinstance(error, httpx.HTTPStatusError):
        return ApiError(f"Network error: {error}", "NETWORK_ERROR")

    status = error.response.status_code
    message = _server_message(error.response)

    if status == 401:
        return ApiError(message or "Not logged in or session expired", "UNAUTHORIZED", status)
    if status == 403:
        return ApiError(message or "Permission denied", "FORBIDDEN", status)
    if status == 404:
        return ApiError(message or "Resource not found (404)", "BAD_REQUEST", status)
    if 400 <= status < 500:
        return ApiError(message or "Bad request", "BAD_REQUEST", status)
    if status >= 500:
        return ApiError(message or "Server error", "SERVER_ERROR", status)
    return ApiError(message or "Unknown error", "UNKNOWN", status)


class UpstreamClient:
    """
    Thin async client for the upstream admin API.

    No retries: a failed call raises ApiError and the caller decides.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {}
        token = token if token is not None else settings.UPSTREAM_TOKEN
        if token:
            # The upstream expects the raw token, without a Bearer prefix
            headers["Authorization"] = token

        self._client = httpx.AsyncClient(
            base_url=base_url or settings.UPSTREAM_API_URL,
            headers=headers,
            timeout=timeout or settings.UPSTREAM_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send a request and return the unwrapped response data.

        Raises:
            ApiError: transport failure, HTTP error status or non-200 envelope
        """
        try:
            if method.upper() == "GET":
                response = await self._client.get(path, params=payload)
            else:
                response = await self._client.request(method.upper(), path, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = to_api_error(e)
            logger.warning(f"{method.upper()} {path} failed: {error.code} {error.message}")
            raise error from e

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError("Upstream returned invalid JSON", "UNKNOWN", response.status_code) from e
        return unwrap_api_response(data, response.status_code)

    async def fetch_list(
        self,
        path: str,
        method: str = "POST",
        payload: Optional[Dict[str, Any]] = None,
    ) -> ListResult:
        data = await self.request(method, path, payload)
        return from_server_list_response(data)

    def make_fetcher(
        self,
        path: str,
        method: str = "POST",
        payload: Optional[Dict[str, Any]] = None,
    ) -> Callable[[TableQuery], Any]:
        """
        Build a table fetcher for a full-list endpoint.

        The table query is not forwarded: the upstream returns everything
        and the engine pages locally.
        """

        async def fetcher(query: TableQuery) -> ListResult:
            return await self.fetch_list(path, method=method, payload=payload)

        return fetcher
