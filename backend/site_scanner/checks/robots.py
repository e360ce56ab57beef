from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from site_scanner.core.context import ScanContext
from site_scanner.core.logger import get_logger

logger = get_logger(__name__)


def parse_robots(text: str, base_url: str = ""):
    """
    Returns (crawl_delay, sitemap_locations).

    Directive names are case-insensitive; comments after ``#`` are ignored.
    Only the first Crawl-delay line counts, even when its value is not a
    number. Sitemap values are resolved against ``base_url`` and keep
    declaration order.
    """
    crawl_delay: Optional[float] = None
    delay_seen = False
    sitemaps: List[str] = []
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if ":" not in line:
            continue
        name, value = line.split(":", 1)
        name = name.strip().lower()
        value = value.strip()
        if name == "crawl-delay" and not delay_seen:
            delay_seen = True
            try:
                crawl_delay = float(value)
            except ValueError:
                logger.debug(f"Ignoring non-numeric Crawl-delay {value!r}")
        elif name == "sitemap" and value:
            location = urljoin(base_url, value)
            if location not in sitemaps:
                sitemaps.append(location)
    return crawl_delay, sitemaps


class RobotsCheck:
    key = "robots"
    title = "robots.txt"
    fields = frozenset({
        "robots_txt_detected",
        "robots_txt_status_code",
        "robots_txt_final_url",
        "robots_txt_final_url_live",
        "robots_txt_final_url_mime_type",
        "robots_txt_final_url_size",
        "robots_txt_target_url_redirects",
        "robots_txt_crawl_delay",
        "robots_txt_sitemap_locations",
    })

    async def run(self, ctx: ScanContext) -> Dict[str, Any]:
        url = f"{ctx.origin}/robots.txt"
        resp = await ctx.fetcher.fetch(url, timeout=ctx.settings.http_timeout)

        body = resp.body or ""
        detected = resp.status_code == 200 and bool(body.strip())
        out: Dict[str, Any] = {
            "robots_txt_detected": detected,
            "robots_txt_status_code": resp.status_code,
            "robots_txt_final_url": resp.final_url,
            "robots_txt_final_url_live": resp.is_live,
            "robots_txt_final_url_mime_type": resp.mime_type or None,
            "robots_txt_final_url_size": resp.body_size,
            "robots_txt_target_url_redirects": resp.redirected,
        }
        if not detected:
            # a missing file leaves directive fields unevaluated
            return out

        crawl_delay, sitemaps = parse_robots(body, resp.final_url)
        if crawl_delay is not None:
            out["robots_txt_crawl_delay"] = crawl_delay
        out["robots_txt_sitemap_locations"] = ",".join(sitemaps)
        logger.debug(f"{url}: crawl-delay={crawl_delay} sitemaps={len(sitemaps)}")
        return out
