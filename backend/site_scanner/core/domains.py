from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import tldextract

# Bundled public suffix snapshot; scans never reach out for a fresh list.
_extract = tldextract.TLDExtract(suffix_list_urls=())


def normalize_url(url: str) -> str:
    """Give bare hosts such as ``18f.gov`` an https scheme."""
    url = url.strip()
    if "://" not in url:
        url = f"https://{url}"
    return url


def hostname(url: str) -> Optional[str]:
    try:
        host = urlsplit(normalize_url(url)).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def registrable_domain(url: str) -> Optional[str]:
    """
    Public suffix plus one label, e.g. ``gsa.gov`` for
    ``https://18f.gsa.gov/``. ``None`` when the URL has no usable host.
    """
    host = hostname(url)
    if not host:
        return None
    extracted = _extract(host)
    if not extracted.suffix:
        # IP addresses and private names have no public suffix
        return extracted.domain.lower() or None
    if not extracted.domain:
        return None
    return f"{extracted.domain}.{extracted.suffix}".lower()


def same_domain(a: str, b: str) -> bool:
    da, db = registrable_domain(a), registrable_domain(b)
    return bool(da) and da == db


def same_host(a: str, b: str) -> bool:
    ha, hb = hostname(a), hostname(b)
    return bool(ha) and ha == hb


def origin(url: str) -> str:
    """scheme://host[:port] with no trailing slash."""
    parts = urlsplit(normalize_url(url))
    return urlunsplit((parts.scheme, parts.netloc, "", "", ""))
