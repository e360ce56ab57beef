"""
Shared fixtures: a routed ``httpx.MockTransport`` standing in for the
network and an in-memory renderer standing in for Playwright.
"""

from typing import Callable, Dict, List, Optional, Union

import httpx
import pytest
import pytest_asyncio

from site_scanner.core.browser import Asset, NetworkRequest, RenderResult
from site_scanner.core.config import Settings
from site_scanner.core.context import ScanContext
from site_scanner.core.errors import RenderError
from site_scanner.core.http import FetchClient, client_for
from site_scanner.models.schemas import ScanRequest

Route = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


def html(body: str, status: int = 200) -> httpx.Response:
    return httpx.Response(status, headers={"content-type": "text/html; charset=utf-8"}, text=body)


def text(body: str, status: int = 200, content_type: str = "text/plain") -> httpx.Response:
    return httpx.Response(status, headers={"content-type": content_type}, text=body)


def redirect(location: str, status: int = 301) -> httpx.Response:
    return httpx.Response(status, headers={"location": location})


class Routes:
    """URL -> response table. Unknown URLs answer 404 like a real server."""

    def __init__(self, table: Optional[Dict[str, Route]] = None, fallback: Optional[Route] = None):
        self.table: Dict[str, Route] = dict(table or {})
        self.fallback = fallback
        self.seen: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.seen.append(url)
        route = next((self.table[c] for c in (url, url.rstrip("/"), url + "/") if c in self.table), self.fallback)
        if route is None:
            return html("<h1>Not Found</h1>", status=404)
        if isinstance(route, Exception):
            raise route
        if callable(route) and not isinstance(route, httpx.Response):
            return route(request)
        # responses are single-use once their stream has been read
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)


class FakeRenderer:
    def __init__(self, result: Optional[RenderResult] = None, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls = 0

    async def render(self, url: str, timeout: Optional[float] = None) -> RenderResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result.model_copy(update={"url": url})


def page(dom: str, final_url: str = "https://www.example.gov/", requests=(), assets=()) -> RenderResult:
    return RenderResult(
        url=final_url,
        final_url=final_url,
        dom=dom,
        network_requests=[NetworkRequest(url=u, resource_type=t) for u, t in requests],
        assets=[Asset(url=u, resource_type=t, text=body) for u, t, body in assets],
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, http2=False, http_timeout=5.0, render_timeout=5.0,
                    browser_acquire_timeout=1.0, deadline_margin=1.0)


@pytest.fixture
def routes() -> Routes:
    return Routes()


@pytest_asyncio.fixture
async def fetcher(settings, routes):
    client = FetchClient(client_for(settings, transport=httpx.MockTransport(routes)))
    yield client
    await client.aclose()


@pytest.fixture
def make_ctx(settings, fetcher):
    def _make(final_url: str = "https://www.example.gov/", mime: str = "text/html",
              renderer: Optional[FakeRenderer] = None) -> ScanContext:
        return ScanContext(
            request=ScanRequest(website_id=1, target_url="example.gov", scan_id="scan-1"),
            final_url=final_url,
            final_mime_type=mime,
            fetcher=fetcher,
            renderer=renderer or FakeRenderer(error=RenderError(final_url, RenderError.CRASH)),
            settings=settings,
        )
    return _make
