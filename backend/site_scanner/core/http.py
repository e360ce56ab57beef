import ssl
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from pydantic import BaseModel

from site_scanner.core.config import Settings
from site_scanner.core.errors import FetchError
from site_scanner.core.logger import get_logger

logger = get_logger(__name__)


class FetchResult(BaseModel):
    url: str
    final_url: str
    status_code: int
    mime_type: str
    body_size: int
    redirected: bool
    body: Optional[str] = None

    @property
    def is_live(self) -> bool:
        return 200 <= self.status_code <= 399


def _mime(resp: httpx.Response) -> str:
    return resp.headers.get("content-type", "").split(";")[0].strip().lower()


def _classify(exc: Exception) -> str:
    if isinstance(exc, httpx.TooManyRedirects):
        return FetchError.REDIRECTS
    if isinstance(exc, httpx.TimeoutException):
        return FetchError.TIMEOUT
    text = f"{exc!r} {exc.__cause__!r}".lower()
    if isinstance(exc.__cause__, ssl.SSLError) or "certificate" in text or "ssl" in text:
        return FetchError.TLS
    if any(m in text for m in ("getaddrinfo", "name or service not known", "nodename nor servname",
                               "name resolution", "no address associated")):
        return FetchError.DNS
    if isinstance(exc, httpx.ConnectError):
        return FetchError.REFUSED
    return FetchError.TRANSPORT


def _timeout(value: Optional[float]):
    return httpx.USE_CLIENT_DEFAULT if value is None else value


class StreamedFetch:
    """Response metadata up front, body pulled chunk by chunk."""

    def __init__(self, url: str, resp: httpx.Response):
        self.url = url
        self.response = resp
        self.final_url = str(resp.url)
        self.status_code = resp.status_code
        self.mime_type = _mime(resp)
        self.redirected = bool(resp.history)
        self.bytes_read = 0
        self._chunks = resp.aiter_bytes()

    @property
    def is_live(self) -> bool:
        return 200 <= self.status_code <= 399

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        # resumes where an abandoned iteration stopped
        try:
            async for chunk in self._chunks:
                self.bytes_read += len(chunk)
                yield chunk
        except httpx.HTTPError as e:
            raise FetchError(self.url, _classify(e), str(e)) from e

    async def drain(self) -> int:
        async for _ in self.iter_bytes():
            pass
        return self.bytes_read

    def result(self) -> FetchResult:
        return FetchResult(
            url=self.url,
            final_url=self.final_url,
            status_code=self.status_code,
            mime_type=self.mime_type,
            body_size=self.bytes_read,
            redirected=self.redirected,
        )


class FetchClient:
    """
    Thin wrapper over a shared ``httpx.AsyncClient``.

    HTTP error statuses are results, not exceptions. Transport faults (DNS,
    TLS, refused connections, timeouts, redirect loops) and URLs httpx
    refuses to parse raise ``FetchError``.
    """

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def fetch(self, url: str, *, timeout: Optional[float] = None, read_body: bool = True) -> FetchResult:
        try:
            resp = await self.client.get(url, timeout=_timeout(timeout))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            reason = _classify(e)
            logger.debug(f"fetch {url} failed: {reason} ({e!r})")
            raise FetchError(url, reason, str(e)) from e

        content = resp.content
        return FetchResult(
            url=url,
            final_url=str(resp.url),
            status_code=resp.status_code,
            mime_type=_mime(resp),
            body_size=len(content),
            redirected=bool(resp.history),
            body=resp.text if read_body else None,
        )

    @asynccontextmanager
    async def stream(self, url: str, *, timeout: Optional[float] = None) -> AsyncIterator[StreamedFetch]:
        try:
            async with self.client.stream("GET", url, timeout=_timeout(timeout)) as resp:
                yield StreamedFetch(url, resp)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(url, _classify(e), str(e)) from e

    async def aclose(self) -> None:
        await self.client.aclose()


def client_for(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout, connect=settings.http_connect_timeout),
        headers={"User-Agent": settings.user_agent, "Accept": "*/*"},
        follow_redirects=True,
        max_redirects=settings.max_redirects,
        http2=settings.http2 and transport is None,
        verify=True,
        transport=transport,
    )
