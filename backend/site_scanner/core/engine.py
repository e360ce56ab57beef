import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from site_scanner.checks.content import ContentCheck
from site_scanner.checks.liveness import LivenessCheck
from site_scanner.checks.robots import RobotsCheck
from site_scanner.checks.sitemap import SitemapCheck
from site_scanner.checks.uswds import UswdsCheck
from site_scanner.core import logger as logging_setup
from site_scanner.core.browser import BrowserPool, Renderer
from site_scanner.core.config import Settings
from site_scanner.core.context import ScanContext
from site_scanner.core.errors import FetchError, FieldOwnershipError
from site_scanner.core.http import FetchClient, client_for
from site_scanner.core.logger import get_logger
from site_scanner.models.schemas import (
    SOLUTIONS_FIELDS,
    CoreResult,
    ScanRequest,
    ScanResult,
    ScanStatus,
    SolutionsResult,
)

logger = get_logger(__name__)

# The sitemap check reads the robots outcome through ``ScanContext.robots_task``.
CHECKS = [
    RobotsCheck(),
    SitemapCheck(),
    ContentCheck(),
    UswdsCheck(),
]


class ScanOrchestrator:
    """
    pending -> liveness-checked -> analyzing -> merged -> completed | failed

    ``failed`` is reached only when the target itself cannot be fetched.
    Check failures and the scan deadline degrade fields to NOT_EVALUATED.
    """

    def __init__(
        self,
        fetcher: FetchClient,
        renderer: Renderer,
        settings: Settings,
        liveness: Optional[LivenessCheck] = None,
        checks: Optional[Sequence[Any]] = None,
    ):
        self.fetcher = fetcher
        self.renderer = renderer
        self.settings = settings
        self.liveness = liveness or LivenessCheck(timeout=settings.http_timeout)
        self.checks = list(CHECKS if checks is None else checks)
        self._check_ownership()

    def _check_ownership(self) -> None:
        seen: Dict[str, str] = {}
        for check in self.checks:
            for name in check.fields:
                if name not in SOLUTIONS_FIELDS:
                    raise FieldOwnershipError(check.key, {name})
                if name in seen:
                    raise FieldOwnershipError(check.key, {name})
                seen[name] = check.key

    def _log(self, request: ScanRequest, stage: str, level: str = "info", extra: str = "") -> None:
        msg = f"scan={request.scan_id} website={request.website_id} stage={stage}"
        getattr(logger, level)(f"{msg} {extra}".rstrip())

    async def scan(self, request: ScanRequest) -> ScanResult:
        self._log(request, "pending", extra=f"target={request.target_url}")
        core = CoreResult(website_id=request.website_id)
        solutions = SolutionsResult(website_id=request.website_id)

        try:
            fields = await self.liveness.run(self.fetcher, request.target_url)
        except FetchError as e:
            self._log(request, "failed", "warning", f"reason={e.reason} error={e}")
            core = core.model_copy(update={"status": ScanStatus.FAILED})
            return ScanResult(scan_id=request.scan_id, core_result=core,
                              solutions_result=solutions, failure_reason=e.reason)

        core = core.model_copy(update=fields)
        self._log(request, "liveness-checked",
                  extra=f"final_url={fields['final_url']} status={fields['final_url_status_code']}")

        ctx = ScanContext(
            request=request,
            final_url=fields["final_url"],
            final_mime_type=fields.get("final_url_mime_type") or "",
            fetcher=self.fetcher,
            renderer=self.renderer,
            settings=self.settings,
        )
        merged = await self._analyze(ctx)
        solutions = solutions.model_copy(update=merged)
        self._log(request, "merged", extra=f"evaluated={len(merged)}/{len(SOLUTIONS_FIELDS)}")

        core = core.model_copy(update={"status": ScanStatus.COMPLETED})
        self._log(request, "completed")
        return ScanResult(scan_id=request.scan_id, core_result=core, solutions_result=solutions)

    async def _analyze(self, ctx: ScanContext) -> Dict[str, Any]:
        self._log(ctx.request, "analyzing", extra=f"checks={len(self.checks)}")
        tasks: Dict[str, asyncio.Task] = {}
        for check in self.checks:
            tasks[check.key] = asyncio.ensure_future(self._settle(check, ctx))
            if isinstance(check, RobotsCheck):
                ctx.robots_task = tasks[check.key]

        deadline = self.settings.effective_deadline()
        try:
            done, pending = await asyncio.wait(tasks.values(), timeout=deadline)
            for task in pending:
                task.cancel()
            if pending:
                unfinished = [key for key, task in tasks.items() if task in pending]
                self._log(ctx.request, "analyzing", "warning",
                          f"deadline {deadline:.0f}s exceeded; cancelled {', '.join(unfinished)}")
                await asyncio.gather(*pending, return_exceptions=True)
        finally:
            await ctx.aclose()

        merged: Dict[str, Any] = {}
        for task in tasks.values():
            if task.cancelled():
                continue
            merged.update(task.result())
        return merged

    async def _settle(self, check, ctx: ScanContext) -> Dict[str, Any]:
        """Run one check; any failure leaves all of its fields NOT_EVALUATED."""
        try:
            fields = await check.run(ctx)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._log(ctx.request, check.key, "warning", f"degraded: {e!r}")
            return {}
        stray = set(fields) - check.fields
        if stray:
            raise FieldOwnershipError(check.key, stray)
        return fields


class ScannerRuntime:
    """
    Process-wide resources: one HTTP client and one browser pool, created at
    startup and torn down at shutdown.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None,
                 renderer: Optional[Renderer] = None):
        self.settings = settings
        self.fetcher = FetchClient(client_for(settings, transport=transport))
        self.pool: Optional[BrowserPool] = None
        if renderer is None:
            self.pool = BrowserPool(
                size=settings.browser_pool_size,
                acquire_timeout=settings.browser_acquire_timeout,
                headless=settings.browser_headless,
            )
            renderer = Renderer(self.pool, timeout=settings.render_timeout,
                                asset_max_bytes=settings.asset_max_bytes)
        self.renderer = renderer
        self.orchestrator = ScanOrchestrator(self.fetcher, self.renderer, settings)

    async def aclose(self) -> None:
        await self.fetcher.aclose()
        if self.pool is not None:
            await self.pool.close()
        logger.info("Scanner runtime closed")

    @classmethod
    @asynccontextmanager
    async def open(cls, settings: Optional[Settings] = None, **kwargs) -> AsyncIterator["ScannerRuntime"]:
        settings = settings or Settings()
        logging_setup.configure(settings.log_level, settings.log_file)
        runtime = cls(settings, **kwargs)
        try:
            yield runtime
        finally:
            await runtime.aclose()


async def run_scan(request: ScanRequest, settings: Optional[Settings] = None) -> ScanResult:
    """One-off scan with its own short-lived runtime."""
    async with ScannerRuntime.open(settings) as runtime:
        return await runtime.orchestrator.scan(request)


async def run_scans(requests: List[ScanRequest], settings: Optional[Settings] = None) -> List[ScanResult]:
    async with ScannerRuntime.open(settings) as runtime:
        return await asyncio.gather(*[runtime.orchestrator.scan(r) for r in requests])
