import uuid
from typing import Any, Dict

from site_scanner.core.domains import normalize_url, origin, registrable_domain, same_domain, same_host
from site_scanner.core.errors import FetchError
from site_scanner.core.http import FetchClient, FetchResult
from site_scanner.core.logger import get_logger
from site_scanner.models.schemas import NOT_EVALUATED

logger = get_logger(__name__)


class LivenessCheck:
    """
    Fetches the target, follows its redirects and probes a path that cannot
    exist. A transport failure on the target itself propagates as
    ``FetchError``; everything after that degrades field by field.
    """

    key = "liveness"
    title = "Liveness & Redirects"
    fields = frozenset({
        "target_url_base_domain",
        "target_url_redirects",
        "target_url_404_test",
        "final_url",
        "final_url_base_domain",
        "final_url_status_code",
        "final_url_mime_type",
        "final_url_is_live",
        "final_url_same_domain",
        "final_url_same_website",
    })

    def __init__(self, timeout: float = 20.0):
        self.timeout = timeout

    async def run(self, fetcher: FetchClient, target_url: str) -> Dict[str, Any]:
        target_url = normalize_url(target_url)
        home = await fetcher.fetch(target_url, timeout=self.timeout)

        out: Dict[str, Any] = {
            "target_url_redirects": home.redirected,
            "final_url": home.final_url,
            "final_url_status_code": home.status_code,
            "final_url_mime_type": home.mime_type or None,
            "final_url_is_live": home.is_live,
        }
        out.update(self._domains(target_url, home.final_url))
        out["target_url_404_test"] = await self._not_found_test(fetcher, target_url, home)
        return out

    @staticmethod
    def _domains(target_url: str, final_url: str) -> Dict[str, Any]:
        target_base = registrable_domain(target_url)
        final_base = registrable_domain(final_url)
        return {
            "target_url_base_domain": target_base or NOT_EVALUATED,
            "final_url_base_domain": final_base or NOT_EVALUATED,
            "final_url_same_domain": same_domain(target_url, final_url),
            "final_url_same_website": same_host(target_url, final_url),
        }

    async def _not_found_test(self, fetcher: FetchClient, target_url: str, home: FetchResult):
        probe_url = f"{origin(target_url)}/{uuid.uuid4().hex}"
        try:
            probe = await fetcher.fetch(probe_url, timeout=self.timeout, read_body=False)
        except FetchError as e:
            logger.warning(f"404 probe for {target_url} failed: {e}")
            return NOT_EVALUATED
        if probe.status_code != 404:
            return False
        # a "404" that serves the home page byte for byte is a soft 404
        soft = home.status_code == 404 or (
            probe.final_url == home.final_url and probe.body_size == home.body_size
        )
        return not soft
