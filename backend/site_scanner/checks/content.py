import re
from typing import Any, Dict, Iterable, Optional, Tuple
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from site_scanner.core.browser import NetworkRequest
from site_scanner.core.context import ScanContext
from site_scanner.core.domains import registrable_domain
from site_scanner.core.logger import get_logger
from site_scanner.models.schemas import NOT_EVALUATED

logger = get_logger(__name__)

# Digital Analytics Program loader
DAP_SCRIPT = re.compile(r"Universal-Federated-Analytics(?:-Min)?\.js", re.IGNORECASE)

OG_TAGS = {
    "og_title_final_url": "og:title",
    "og_description_final_url": "og:description",
    "og_article_published_final_url": "article:published_time",
    "og_article_modified_final_url": "article:modified_time",
}


def meta_content(soup: BeautifulSoup, prop: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    if tag is None:
        return None
    content = tag.get("content")
    return content.strip() if content is not None else None


def find_dap(soup: BeautifulSoup, requests: Iterable[NetworkRequest]) -> Tuple[bool, Optional[str]]:
    """DAP is detected from a script tag or, when injected later, from the request log."""
    candidates = [s.get("src", "") for s in soup.find_all("script", src=True)]
    candidates += [r.url for r in requests if r.resource_type == "script"]
    for src in candidates:
        if DAP_SCRIPT.search(src):
            return True, urlsplit(src).query or None
    return False, None


def third_party_domains(final_url: str, requests: Iterable[NetworkRequest]) -> list:
    own = registrable_domain(final_url)
    domains = set()
    for request in requests:
        if not request.url.startswith(("http://", "https://")):
            continue
        domain = registrable_domain(request.url)
        if domain and domain != own:
            domains.add(domain)
    return sorted(domains)


class ContentCheck:
    key = "content"
    title = "Rendered content"
    fields = frozenset({
        "main_element_final_url",
        *OG_TAGS,
        "dap_detected",
        "dap_parameters",
        "third_party_service_domains",
        "third_party_service_count",
    })

    async def run(self, ctx: ScanContext) -> Dict[str, Any]:
        page = await ctx.rendered()
        soup = BeautifulSoup(page.dom, "lxml")

        out: Dict[str, Any] = {
            "main_element_final_url": bool(soup.find("main") or soup.find(attrs={"role": "main"})),
        }

        if ctx.is_html:
            for field_name, prop in OG_TAGS.items():
                out[field_name] = meta_content(soup, prop)
        else:
            logger.debug(f"{ctx.final_url} is {ctx.final_mime_type}; skipping Open Graph tags")

        detected, params = find_dap(soup, page.network_requests)
        out["dap_detected"] = detected
        out["dap_parameters"] = params if detected else NOT_EVALUATED

        domains = third_party_domains(page.final_url or ctx.final_url, page.network_requests)
        out["third_party_service_domains"] = ",".join(domains)
        out["third_party_service_count"] = len(domains)
        return out
