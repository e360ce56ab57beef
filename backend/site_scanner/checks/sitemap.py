import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterator, List, Optional

from site_scanner.core.context import ScanContext
from site_scanner.core.errors import FetchError
from site_scanner.core.http import FetchClient, StreamedFetch
from site_scanner.core.logger import get_logger

logger = get_logger(__name__)

# <url><loc> is a page, <sitemap><loc> points at another sitemap
PAGE, CHILD = "url", "sitemap"


@dataclass
class SitemapEntry:
    kind: str
    loc: str


@dataclass
class SitemapCounts:
    urls: int = 0
    pdfs: int = 0
    child_locations: List[str] = field(default_factory=list)


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


class SitemapParser:
    """
    Incremental urlset/sitemapindex reader.

    Bytes are fed as they arrive; completed entries are handed back after
    every chunk and their elements detached from the root, so memory stays
    bounded by the chunk size rather than the document size.
    ``ET.ParseError`` surfaces on the chunk where the document stops being
    well-formed.
    """

    def __init__(self):
        self._parser = ET.XMLPullParser(events=("start", "end"))
        self._stack: List[str] = []
        self._root: Optional[ET.Element] = None

    def feed(self, chunk: bytes) -> Iterator[SitemapEntry]:
        self._parser.feed(chunk)
        return self._drain()

    def close(self) -> Iterator[SitemapEntry]:
        self._parser.close()
        return self._drain()

    def _drain(self) -> Iterator[SitemapEntry]:
        entries = []
        for event, elem in self._parser.read_events():
            name = _local(elem.tag)
            if event == "start":
                if self._root is None:
                    self._root = elem
                self._stack.append(name)
                continue
            self._stack.pop()
            if name == "loc" and self._stack and self._stack[-1] in (PAGE, CHILD):
                entries.append(SitemapEntry(kind=self._stack[-1], loc=(elem.text or "").strip()))
            elif name in (PAGE, CHILD):
                elem.clear()
            if len(self._stack) == 1:
                self._root.remove(elem)
        return iter(entries)


async def iter_sitemap_entries(stream: StreamedFetch) -> AsyncIterator[SitemapEntry]:
    """Pull entries off a streamed response. Restart means re-fetching."""
    parser = SitemapParser()
    async for chunk in stream.iter_bytes():
        for entry in parser.feed(chunk):
            yield entry
    for entry in parser.close():
        yield entry


def looks_like_sitemap(mime_type: str) -> bool:
    return "xml" in mime_type or mime_type.startswith("text/")


async def count_entries(stream: StreamedFetch) -> SitemapCounts:
    """Count page and child entries; raises ET.ParseError on malformed XML."""
    counts = SitemapCounts()
    async for entry in iter_sitemap_entries(stream):
        if entry.kind == PAGE:
            counts.urls += 1
            if entry.loc.lower().endswith(".pdf"):
                counts.pdfs += 1
        elif entry.loc:
            counts.child_locations.append(entry.loc)
    return counts


class SitemapCheck:
    key = "sitemap"
    title = "sitemap.xml"
    fields = frozenset({
        "sitemap_xml_detected",
        "sitemap_target_url_redirects",
        "sitemap_xml_final_url",
        "sitemap_xml_final_url_live",
        "sitemap_xml_status_code",
        "sitemap_xml_final_url_mime_type",
        "sitemap_xml_final_url_filesize",
        "sitemap_xml_count",
        "sitemap_xml_pdf_count",
    })

    async def run(self, ctx: ScanContext) -> Dict[str, Any]:
        declared = await ctx.declared_sitemaps()
        url = declared[0] if declared else f"{ctx.origin}/sitemap.xml"
        settings = ctx.settings

        out: Dict[str, Any] = {}
        counts: Optional[SitemapCounts] = None
        async with ctx.fetcher.stream(url, timeout=settings.http_timeout) as resp:
            detected = resp.is_live and looks_like_sitemap(resp.mime_type)
            out.update({
                "sitemap_xml_detected": detected,
                "sitemap_target_url_redirects": resp.redirected,
                "sitemap_xml_final_url": resp.final_url,
                "sitemap_xml_final_url_live": resp.is_live,
                "sitemap_xml_status_code": resp.status_code,
                "sitemap_xml_final_url_mime_type": resp.mime_type or None,
            })
            if detected:
                try:
                    counts = await count_entries(resp)
                except ET.ParseError as e:
                    logger.warning(f"Malformed sitemap {resp.final_url}: {e}")
            # read whatever the parser did not need so the size is the full body
            await resp.drain()
            out["sitemap_xml_final_url_filesize"] = resp.bytes_read

        if counts is None:
            return out

        if counts.child_locations and settings.sitemap_index_depth > 0:
            await self._expand_index(ctx.fetcher, counts, settings.sitemap_index_depth,
                                     settings.sitemap_index_max_children, settings.http_timeout)
        out["sitemap_xml_count"] = counts.urls
        out["sitemap_xml_pdf_count"] = counts.pdfs
        return out

    async def _expand_index(self, fetcher: FetchClient, counts: SitemapCounts, depth: int,
                            max_children: int, timeout: float) -> None:
        """Fold child sitemap counts into ``counts``, ``depth`` levels deep."""
        for loc in counts.child_locations[:max_children]:
            try:
                async with fetcher.stream(loc, timeout=timeout) as child:
                    if not (child.is_live and looks_like_sitemap(child.mime_type)):
                        continue
                    sub = await count_entries(child)
            except (FetchError, ET.ParseError) as e:
                logger.warning(f"Skipping child sitemap {loc}: {e}")
                continue
            if depth > 1 and sub.child_locations:
                await self._expand_index(fetcher, sub, depth - 1, max_children, timeout)
            counts.urls += sub.urls
            counts.pdfs += sub.pdfs
        if len(counts.child_locations) > max_children:
            logger.info(f"Sitemap index lists {len(counts.child_locations)} children, "
                        f"followed the first {max_children}")
