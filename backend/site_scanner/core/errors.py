class ScannerError(Exception):
    """Base class for everything the scan pipeline raises on purpose."""


class FetchError(ScannerError):
    # reason codes
    DNS = "dns_resolution_error"
    TLS = "invalid_ssl_cert"
    REFUSED = "connection_refused"
    TIMEOUT = "timeout"
    REDIRECTS = "too_many_redirects"
    TRANSPORT = "transport_error"

    def __init__(self, url: str, reason: str, detail: str = ""):
        self.url = url
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason} fetching {url}" + (f": {detail}" if detail else ""))


class RenderError(ScannerError):
    TIMEOUT = "timeout"
    CRASH = "crash"
    EXHAUSTED = "pool_exhausted"

    def __init__(self, url: str, reason: str, detail: str = ""):
        self.url = url
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason} rendering {url}" + (f": {detail}" if detail else ""))


class BrowserPoolExhausted(RenderError):
    def __init__(self, url: str, waited: float):
        super().__init__(url, RenderError.EXHAUSTED, f"no browser context free after {waited:.0f}s")


class FieldOwnershipError(ScannerError):
    """An analyzer produced a field it does not own."""

    def __init__(self, analyzer: str, fields):
        self.analyzer = analyzer
        self.fields = sorted(fields)
        super().__init__(f"{analyzer} wrote fields it does not own: {', '.join(self.fields)}")
