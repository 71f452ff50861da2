"""aiohttp implementation of the retrying transport."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from .interfaces import FailureKind, OutboundRequest, TransportError, TransportResponse
from .retry import RetryingTransport, RetryPolicy


class AiohttpTransport(RetryingTransport):
    """Transport backed by a shared ``aiohttp.ClientSession``.

    The session is created on first use and must be released with
    ``close()`` (or by using the transport as an async context manager).
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
        default_headers: Optional[Dict[str, str]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(policy=policy, sleep=sleep)
        self.timeout = timeout
        self.default_headers = dict(default_headers or {})
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "AiohttpTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.default_headers)
        return self._session

    def _build_body(self, request: OutboundRequest) -> Dict[str, Any]:
        """Build the aiohttp body arguments for one attempt.

        aiohttp consumes ``FormData`` when it is sent, so multipart bodies
        are rebuilt on every attempt.
        """
        if request.multipart is not None:
            form = aiohttp.FormData()
            for part in request.multipart:
                form.add_field(
                    part.name,
                    part.value,
                    filename=part.filename,
                    content_type=part.content_type
                )
            return {"data": form}
        if request.form is not None:
            return {"data": list(request.form)}
        if request.json is not None:
            return {"json": request.json}
        return {}

    async def _attempt(self, request: OutboundRequest) -> TransportResponse:
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=request.timeout or self.timeout)

        try:
            async with session.request(
                request.method,
                request.url,
                headers=request.headers or None,
                params=request.params,
                timeout=timeout,
                **self._build_body(request)
            ) as response:
                body = await response.read()
                return TransportResponse(
                    status=response.status,
                    body=body,
                    headers=dict(response.headers)
                )
        except asyncio.TimeoutError:
            raise TransportError(
                f"Timeout after {timeout.total}s calling {request.method} {request.url}",
                kind=FailureKind.TRANSIENT,
                url=request.url
            ) from None
        except aiohttp.ClientError as e:
            raise TransportError(
                f"Network error calling {request.method} {request.url}: {e}",
                kind=FailureKind.TRANSIENT,
                url=request.url
            ) from e

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
