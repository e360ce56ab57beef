import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from site_scanner.core.browser import BrowserPool, Renderer
from site_scanner.core.errors import BrowserPoolExhausted, RenderError


class FakeResponse:
    def __init__(self, url, resource_type, body=b"", ok=True):
        self.url = url
        self.request = SimpleNamespace(url=url, resource_type=resource_type)
        self.ok = ok
        self._body = body

    async def body(self):
        return self._body


class StalledResponse(FakeResponse):
    async def body(self):
        await asyncio.sleep(3600)


class FakePage:
    def __init__(self, responses, dom="<html></html>", error=None):
        self.responses = responses
        self.dom = dom
        self.error = error
        self.handlers = {}
        self.url = "about:blank"

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    async def goto(self, url, wait_until="load", timeout=None):
        for resp in self.responses:
            for handler in self.handlers.get("request", []):
                handler(resp.request)
            for handler in self.handlers.get("response", []):
                handler(resp)
        if self.error:
            raise self.error
        self.url = url

    async def content(self):
        return self.dom


class FakePool:
    def __init__(self, page):
        self.page = page
        self.acquired = 0
        self.released = 0

    @asynccontextmanager
    async def context(self, url=""):
        self.acquired += 1
        try:
            yield SimpleNamespace(new_page=self._new_page)
        finally:
            self.released += 1

    async def _new_page(self):
        return self.page


class TestRenderer:
    @pytest.mark.asyncio
    async def test_captures_requests_and_assets(self):
        responses = [
            FakeResponse("https://x.gov/", "document", b"<html></html>"),
            FakeResponse("https://x.gov/site.css", "stylesheet", b"/*! uswds v3.0.0 */"),
            FakeResponse("https://x.gov/big.js", "script", b"a" * 50),
            FakeResponse("https://x.gov/missing.js", "script", ok=False),
        ]
        pool = FakePool(FakePage(responses, dom="<html><main></main></html>"))
        result = await Renderer(pool, asset_max_bytes=10).render("https://x.gov/")

        assert result.final_url == "https://x.gov/"
        assert result.dom == "<html><main></main></html>"
        assert [r.resource_type for r in result.network_requests] == ["document", "stylesheet", "script", "script"]
        assert result.asset_text("stylesheet") == ["/*! uswds "]
        assert result.asset_text("script") == ["a" * 10]
        assert pool.released == 1

    @pytest.mark.asyncio
    async def test_timeout_releases_context(self):
        pool = FakePool(FakePage([], error=PlaywrightTimeoutError("Timeout 30000ms exceeded")))
        with pytest.raises(RenderError) as exc:
            await Renderer(pool).render("https://slow.gov/")
        assert exc.value.reason == RenderError.TIMEOUT
        assert pool.acquired == pool.released == 1

    @pytest.mark.asyncio
    async def test_stalled_asset_body_times_out(self):
        responses = [
            FakeResponse("https://x.gov/site.css", "stylesheet", b"body{}"),
            StalledResponse("https://x.gov/stream.js", "script"),
        ]
        pool = FakePool(FakePage(responses))
        with pytest.raises(RenderError) as exc:
            await asyncio.wait_for(Renderer(pool, timeout=0.1).render("https://x.gov/"), timeout=5)
        assert exc.value.reason == RenderError.TIMEOUT
        assert pool.acquired == pool.released == 1


class TestBrowserPool:
    @pytest.mark.asyncio
    async def test_exhausted_pool_times_out(self):
        pool = BrowserPool(size=1, acquire_timeout=0.05)
        await pool._slots.acquire()
        with pytest.raises(BrowserPoolExhausted) as exc:
            async with pool.context("https://x.gov/"):
                pass
        assert exc.value.reason == RenderError.EXHAUSTED
        assert pool.in_use == 0

    @pytest.mark.asyncio
    async def test_close_without_launch_is_a_noop(self):
        pool = BrowserPool(size=1)
        await pool.close()
        await asyncio.sleep(0)
        assert pool.in_use == 0
