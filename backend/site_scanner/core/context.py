import asyncio
from typing import Any, Dict, List, Optional

from site_scanner.core.browser import Renderer, RenderResult
from site_scanner.core.config import Settings
from site_scanner.core.domains import origin
from site_scanner.core.http import FetchClient
from site_scanner.models.schemas import ScanRequest


class ScanContext:
    """
    Read-only view of one scan handed to every post-liveness check.

    Holds the resolved final URL plus the two pieces of work more than one
    check depends on: the robots.txt outcome (for sitemap discovery) and a
    single shared render of the final URL.
    """

    def __init__(
        self,
        request: ScanRequest,
        final_url: str,
        final_mime_type: str,
        fetcher: FetchClient,
        renderer: Renderer,
        settings: Settings,
    ):
        self.request = request
        self.final_url = final_url
        self.final_mime_type = final_mime_type
        self.fetcher = fetcher
        self.renderer = renderer
        self.settings = settings
        self.robots_task: Optional["asyncio.Task[Dict[str, Any]]"] = None
        self._render_task: Optional["asyncio.Task[RenderResult]"] = None

    @property
    def origin(self) -> str:
        return origin(self.final_url)

    @property
    def is_html(self) -> bool:
        return "html" in self.final_mime_type

    async def declared_sitemaps(self) -> List[str]:
        if self.robots_task is None:
            return []
        fields = await asyncio.shield(self.robots_task)
        locations = fields.get("robots_txt_sitemap_locations")
        if not isinstance(locations, str) or not locations:
            return []
        return [loc for loc in locations.split(",") if loc]

    async def rendered(self) -> RenderResult:
        if self._render_task is None:
            self._render_task = asyncio.ensure_future(
                self.renderer.render(self.final_url, timeout=self.settings.render_timeout)
            )
        return await asyncio.shield(self._render_task)

    async def aclose(self) -> None:
        task = self._render_task
        if task is None:
            return
        if not task.done():
            task.cancel()
        # retrieve the outcome so a failed render is not reported as never awaited
        await asyncio.gather(task, return_exceptions=True)
