"""
Rendering client backed by a bounded pool of Playwright browser contexts.

One Chromium process is launched lazily and shared by every scan in the
process. Each render gets a fresh ``BrowserContext``; at most
``size`` contexts exist at once. Callers that cannot get a slot within
``acquire_timeout`` seconds get ``BrowserPoolExhausted``.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Response
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pydantic import BaseModel, Field

from site_scanner.core.errors import BrowserPoolExhausted, RenderError
from site_scanner.core.logger import get_logger

logger = get_logger(__name__)

ASSET_TYPES = ("stylesheet", "script")


class NetworkRequest(BaseModel):
    url: str
    resource_type: str


class Asset(BaseModel):
    url: str
    resource_type: str
    text: str


class RenderResult(BaseModel):
    url: str
    final_url: str
    dom: str
    network_requests: List[NetworkRequest] = Field(default_factory=list)
    assets: List[Asset] = Field(default_factory=list)

    def asset_text(self, resource_type: str) -> List[str]:
        return [a.text for a in self.assets if a.resource_type == resource_type]


class BrowserPool:
    def __init__(self, size: int = 2, acquire_timeout: float = 30.0, headless: bool = True):
        self.size = size
        self.acquire_timeout = acquire_timeout
        self.headless = headless
        self._slots = asyncio.Semaphore(size)
        self._lock = asyncio.Lock()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self.in_use = 0

    async def _get_browser(self) -> Browser:
        async with self._lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
                logger.info("Playwright started")
            if self._browser is None or not self._browser.is_connected():
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless,
                    args=["--no-sandbox", "--disable-dev-shm-usage"],
                )
                logger.info(f"Chromium launched for a pool of {self.size} contexts")
            return self._browser

    @asynccontextmanager
    async def context(self, url: str = "") -> AsyncIterator[BrowserContext]:
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError:
            raise BrowserPoolExhausted(url, self.acquire_timeout) from None

        self.in_use += 1
        context: Optional[BrowserContext] = None
        try:
            browser = await self._get_browser()
            context = await browser.new_context(ignore_https_errors=False)
            yield context
        finally:
            if context is not None:
                try:
                    await context.close()
                except PlaywrightError as e:
                    logger.warning(f"Error closing browser context: {e}")
            self.in_use -= 1
            self._slots.release()

    async def close(self) -> None:
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except PlaywrightError as e:
                    logger.warning(f"Error closing browser: {e}")
                finally:
                    self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                logger.info("Playwright stopped")


class Renderer:
    def __init__(self, pool: BrowserPool, timeout: float = 30.0, asset_max_bytes: int = 2_000_000):
        self.pool = pool
        self.timeout = timeout
        self.asset_max_bytes = asset_max_bytes

    async def _capture(self, response: Response) -> Optional[Asset]:
        try:
            body = await response.body()
        except PlaywrightError as e:
            logger.debug(f"Could not read asset {response.url}: {e}")
            return None
        if len(body) > self.asset_max_bytes:
            body = body[: self.asset_max_bytes]
        return Asset(
            url=response.url,
            resource_type=response.request.resource_type,
            text=body.decode("utf-8", errors="replace"),
        )

    async def render(self, url: str, timeout: Optional[float] = None) -> RenderResult:
        timeout = timeout or self.timeout
        requests: List[NetworkRequest] = []
        captures: List[asyncio.Task] = []

        def on_request(request):
            requests.append(NetworkRequest(url=request.url, resource_type=request.resource_type))

        def on_response(response: Response):
            if response.request.resource_type in ASSET_TYPES and response.ok:
                captures.append(asyncio.ensure_future(self._capture(response)))

        async with self.pool.context(url) as context:
            page = await context.new_page()
            page.on("request", on_request)
            page.on("response", on_response)
            loop = asyncio.get_running_loop()
            started = loop.time()
            try:
                await page.goto(url, wait_until="load", timeout=timeout * 1000)
                # asset bodies share the render budget with navigation
                remaining = max(timeout - (loop.time() - started), 0)
                captured = await asyncio.wait_for(asyncio.gather(*captures), timeout=remaining)
                assets = [a for a in captured if a is not None]
                dom = await page.content()
            except asyncio.TimeoutError as e:
                raise RenderError(url, RenderError.TIMEOUT, f"asset capture exceeded {timeout:g}s") from e
            except PlaywrightTimeoutError as e:
                raise RenderError(url, RenderError.TIMEOUT, str(e)) from e
            except PlaywrightError as e:
                raise RenderError(url, RenderError.CRASH, str(e)) from e
            finally:
                for task in captures:
                    if not task.done():
                        task.cancel()

            return RenderResult(
                url=url,
                final_url=page.url,
                dom=dom,
                network_requests=requests,
                assets=assets,
            )
