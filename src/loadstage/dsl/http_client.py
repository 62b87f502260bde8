"""Instrumented HTTP client with auto-timing, metric emission and captured responses."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp

from loadstage._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = get_logger("dsl.http_client")

_UNSET: Any = object()


def _noop_callback(metric: RequestMetric) -> None:
    """Default no-op metric callback."""


@dataclass
class RequestMetric:
    """Raw metric emitted for every HTTP request.

    Attributes:
        timestamp: Monotonic timestamp when the request started.
        name: Logical name for metric grouping (usually the step name).
        method: HTTP method (GET, POST, etc.).
        url: Full request URL.
        status_code: HTTP response status code (0 if the transport failed).
        latency_ms: Response time in milliseconds.
        content_length: Response body size in bytes.
        error: Transport error message, None on any HTTP response.
        group: Name of the scenario group the request belongs to.
        user_id: Virtual user that made the request.
    """

    timestamp: float
    name: str
    method: str
    url: str
    status_code: int
    latency_ms: float
    content_length: int
    error: str | None = None
    group: str = ""
    user_id: int = 0

    @property
    def failed(self) -> bool:
        """True for transport failures and HTTP status >= 400."""
        return self.error is not None or self.status_code >= 400


@dataclass
class Response:
    """A fully-read HTTP response, or the record of a transport failure.

    Unlike ``aiohttp.ClientResponse`` the body is already buffered, so the
    object stays valid after the connection is released and can be handed
    to any number of check predicates.

    Attributes:
        url: Full request URL.
        status: HTTP status code, 0 if no response was received.
        headers: Response headers (empty on transport failure).
        body: Raw response body.
        latency_ms: Time from sending the request to reading the body.
        error: Transport error as ``"<ExceptionType>: <message>"``, or None.
    """

    url: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    latency_ms: float = 0.0
    error: str | None = None
    _json_cache: Any = field(default=_UNSET, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        """True if a response arrived with a 2xx status."""
        return self.error is None and 200 <= self.status < 300

    @property
    def text(self) -> str:
        """Body decoded as UTF-8, with undecodable bytes replaced."""
        return self.body.decode("utf-8", errors="replace")

    def json(self, selector: str | None = None) -> Any:
        """Return the decoded JSON body, or the value at *selector*.

        *selector* is a dotted path; integer segments index into lists,
        e.g. ``"data.items.0.id"``.  A body that is not JSON, or a path that
        does not resolve, yields None rather than raising.

        Args:
            selector: Optional dotted path into the document.

        Returns:
            The decoded value, or None.
        """
        if self._json_cache is _UNSET:
            try:
                self._json_cache = json.loads(self.body) if self.body else None
            except ValueError:
                self._json_cache = None

        value = self._json_cache
        if selector is None:
            return value

        for part in selector.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            elif isinstance(value, list) and part.lstrip("-").isdigit():
                index = int(part)
                value = value[index] if -len(value) <= index < len(value) else None
            else:
                return None
            if value is None:
                return None
        return value


class HttpClient:
    """Instrumented async HTTP client wrapping ``aiohttp.ClientSession``.

    Every request is timed and emits a ``RequestMetric`` through
    ``metric_callback``.  Transport failures (refused connections,
    timeouts, DNS errors, requests aiohttp refuses to build) do not
    raise: they come back as a :class:`Response` with ``status == 0``
    and ``error`` set, so a calling iteration can carry on with its next
    step.

    Attributes:
        base_url: Base URL prepended to relative request paths.
        headers: Headers applied to every request.
    """

    def __init__(
        self,
        base_url: str = "",
        headers: Mapping[str, str] | None = None,
        metric_callback: Callable[[RequestMetric], None] | None = None,
        user_id: int = 0,
        timeout: float = 60.0,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            base_url: Base URL prepended to relative paths.
            headers: Default headers applied to every request.
            metric_callback: Called with a ``RequestMetric`` after each
                request.  Defaults to a no-op.
            user_id: Virtual user identifier for metric tagging.
            timeout: Total per-request timeout in seconds.
        """
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = dict(headers or {})
        self._metric_callback = metric_callback or _noop_callback
        self._user_id = user_id
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> HttpClient:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    def resolve_url(self, url: str) -> str:
        """Return *url* unchanged if absolute, else joined onto ``base_url``."""
        if url.startswith(("http://", "https://")):
            return url
        if not url.startswith("/"):
            url = f"/{url}"
        return f"{self.base_url}{url}"

    async def get(self, url: str, **kwargs: Any) -> Response:
        """Send a GET request.  See :meth:`request`."""
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Response:
        """Send a POST request.  See :meth:`request`."""
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> Response:
        """Send a PUT request.  See :meth:`request`."""
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> Response:
        """Send a PATCH request.  See :meth:`request`."""
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Response:
        """Send a DELETE request.  See :meth:`request`."""
        return await self.request("DELETE", url, **kwargs)

    async def request(
        self,
        method: str,
        url: str,
        *,
        name: str | None = None,
        group: str = "",
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        data: Any = None,
    ) -> Response:
        """Send an HTTP request, time it, and emit a metric.

        Args:
            method: HTTP method.
            url: Absolute URL or path relative to ``base_url``.
            name: Logical name for metric grouping.  Defaults to the URL.
            group: Scenario group name for metric tagging.
            headers: Per-request headers merged over the client defaults.
            params: Query string parameters.
            json: JSON-serialisable body.
            data: Form fields (mapping) or raw body (str/bytes).

        Returns:
            The buffered :class:`Response`.

        Raises:
            RuntimeError: If the client is used outside of an async context
                manager.
        """
        if self._session is None:
            msg = "HttpClient must be used as an async context manager"
            raise RuntimeError(msg)

        full_url = self.resolve_url(url)
        merged_headers = {**self.headers, **(headers or {})}

        start = time.monotonic()
        status = 0
        body = b""
        response_headers: dict[str, str] = {}
        error: str | None = None

        try:
            async with self._session.request(
                method,
                full_url,
                headers=merged_headers,
                params=params,
                json=json,
                data=data,
            ) as resp:
                body = await resp.read()
                status = resp.status
                response_headers = dict(resp.headers)
        # ValueError and TypeError come from building the request, e.g. a
        # rendered header value containing a newline.
        except (aiohttp.ClientError, TimeoutError, ValueError, TypeError) as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.debug("%s %s failed: %s", method, full_url, error)

        latency_ms = (time.monotonic() - start) * 1000
        self._metric_callback(
            RequestMetric(
                timestamp=start,
                name=name or url,
                method=method,
                url=full_url,
                status_code=status,
                latency_ms=latency_ms,
                content_length=len(body),
                error=error,
                group=group,
                user_id=self._user_id,
            )
        )

        return Response(
            url=full_url,
            status=status,
            headers=response_headers,
            body=body,
            latency_ms=latency_ms,
            error=error,
        )
