from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_UA = (
    "SiteScanner/0.4 (+https://digital.gov/site-scanning) "
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SCANNER_",
        env_file=str(Path(__file__).parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── HTTP ────────────────────────────────────
    http_timeout: float = 20.0
    http_connect_timeout: float = 10.0
    max_redirects: int = 10
    user_agent: str = DEFAULT_UA
    http2: bool = True

    # ── Rendering ───────────────────────────────
    render_timeout: float = 30.0
    browser_pool_size: int = 2
    browser_acquire_timeout: float = 30.0
    browser_headless: bool = True
    asset_max_bytes: int = 2_000_000

    # ── Sitemap ─────────────────────────────────
    sitemap_index_depth: int = 1
    sitemap_index_max_children: int = 20

    # ── Scan ────────────────────────────────────
    scan_deadline: Optional[float] = None
    deadline_margin: float = 10.0

    # ── Logging ─────────────────────────────────
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def effective_deadline(self) -> float:
        """Whole-scan budget once liveness has returned.

        Robots then sitemap run back to back while the render runs beside
        them, so the slower of the two branches bounds the fan-out.
        """
        if self.scan_deadline is not None:
            return self.scan_deadline
        sitemap_branch = self.http_timeout * (2 + self.sitemap_index_max_children)
        render_branch = self.browser_acquire_timeout + self.render_timeout
        return max(sitemap_branch, render_branch) + self.deadline_margin
