"""
USWDS adoption fingerprint.

Minified and bundled assets often strip the framework's name, so no single
signal is trusted. Each counter below is a cheap textual probe; their
weighted sum ``uswds_count`` is bucketed into ``uswds_version``.

Weight table (counter -> contribution to uswds_count):

    usa_classes              round(sqrt(n)) * 5
    uswds_string             n
    uswds_string_in_css      20 if n else 0
    uswds_tables             10 * n
    uswds_inline_css         n
    uswds_us_flag            20 if n else 0
    uswds_us_flag_in_css     20 if n else 0
    uswds_public_sans_font   20 if n else 0
    uswds_source_sans_font    5 if n else 0
    uswds_merriweather_font   5 if n else 0

Presence-only weights keep a single large stylesheet from dominating the
score. The thresholds in VERSION_BUCKETS are provisional and should be
re-fit against a wider corpus.
"""

import bisect
import math
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup

from site_scanner.core.browser import RenderResult
from site_scanner.core.context import ScanContext
from site_scanner.models.schemas import NOT_EVALUATED

USWDS_TOKEN = re.compile(r"uswds", re.IGNORECASE)
US_FLAG = re.compile(r"us_flag_small\.png|us[-_]flag[-_]small", re.IGNORECASE)
USA_CLASS_PREFIX = "usa-"
INLINE_CSS = re.compile(r"--usa-[\w-]+|var\(--uswds", re.IGNORECASE)
SEMVER = re.compile(r"uswds[^0-9\n]{0,12}?v?(\d+\.\d+\.\d+)", re.IGNORECASE)
# leading banner comments only, e.g. /*! uswds v2.9.0 */
BANNER_CHARS = 1000


def _font(name: str) -> re.Pattern:
    return re.compile(r"font-family\s*:[^;}]*" + name, re.IGNORECASE)


FONTS = {
    "uswds_public_sans_font": _font(r"public[\s-]?sans"),
    "uswds_source_sans_font": _font(r"source[\s-]?sans[\s-]?pro"),
    "uswds_merriweather_font": _font(r"merriweather"),
}

WEIGHTS = {
    "uswds_string": lambda n: n,
    "uswds_string_in_css": lambda n: 20 if n else 0,
    "usa_classes": lambda n: round(math.sqrt(n)) * 5,
    "uswds_tables": lambda n: 10 * n,
    "uswds_inline_css": lambda n: n,
    "uswds_us_flag": lambda n: 20 if n else 0,
    "uswds_us_flag_in_css": lambda n: 20 if n else 0,
    "uswds_public_sans_font": lambda n: 20 if n else 0,
    "uswds_source_sans_font": lambda n: 5 if n else 0,
    "uswds_merriweather_font": lambda n: 5 if n else 0,
}

# (lower bound of uswds_count, classification); covers every n >= 0
VERSION_BUCKETS = ((0, 0), (1, 1), (50, 2), (100, 3))


def weighted_count(counters: Dict[str, int]) -> int:
    return sum(weigh(counters.get(name, 0)) for name, weigh in WEIGHTS.items())


def classify_version(count: int) -> int:
    bounds = [lower for lower, _ in VERSION_BUCKETS]
    index = bisect.bisect_right(bounds, max(count, 0)) - 1
    return VERSION_BUCKETS[index][1]


def semantic_version(asset_urls: List[str], asset_texts: List[str]) -> Optional[str]:
    for url in asset_urls:
        match = SEMVER.search(url)
        if match:
            return match.group(1)
    for text in asset_texts:
        match = SEMVER.search(text[:BANNER_CHARS])
        if match:
            return match.group(1)
    return None


def count_signals(page: RenderResult) -> Dict[str, int]:
    soup = BeautifulSoup(page.dom, "lxml")

    css_text = "\n".join([s.get_text() for s in soup.find_all("style")] + page.asset_text("stylesheet"))
    external_scripts = "\n".join(page.asset_text("script"))
    # markup (inline scripts included) minus inline <style>, which counts as CSS
    markup = page.dom
    for style in soup.find_all("style"):
        markup = markup.replace(style.get_text(), "")

    usa_classes = sum(
        1 for el in soup.find_all(class_=True)
        if any(c.startswith(USA_CLASS_PREFIX) for c in el.get("class", []))
    )
    tables = sum(1 for t in soup.find_all("table") if "usa-table" in t.get("class", []))
    style_attrs = [el.get("style", "") for el in soup.find_all(style=True)]

    counters = {
        "uswds_string": len(USWDS_TOKEN.findall(markup)) + len(USWDS_TOKEN.findall(external_scripts)),
        "uswds_string_in_css": len(USWDS_TOKEN.findall(css_text)),
        "usa_classes": usa_classes,
        "uswds_tables": tables,
        "uswds_inline_css": sum(1 for s in style_attrs if INLINE_CSS.search(s)),
        "uswds_us_flag": len(US_FLAG.findall(markup)) + len(US_FLAG.findall(external_scripts)),
        "uswds_us_flag_in_css": len(US_FLAG.findall(css_text)),
    }
    font_text = css_text + "\n" + "\n".join(style_attrs)
    for name, pattern in FONTS.items():
        counters[name] = len(pattern.findall(font_text))
    return counters


class UswdsCheck:
    key = "uswds"
    title = "USWDS fingerprint"
    fields = frozenset({
        *WEIGHTS,
        "uswds_count",
        "uswds_version",
        "uswds_semantic_version",
    })

    async def run(self, ctx: ScanContext) -> Dict[str, Any]:
        page = await ctx.rendered()
        out: Dict[str, Any] = dict(count_signals(page))
        total = weighted_count(out)
        out["uswds_count"] = total
        out["uswds_version"] = classify_version(total)

        asset_urls = [r.url for r in page.network_requests if r.resource_type in ("stylesheet", "script")]
        texts = page.asset_text("stylesheet") + page.asset_text("script")
        version = semantic_version(asset_urls, texts)
        out["uswds_semantic_version"] = version if version else NOT_EVALUATED
        return out
