# pf_watch/http_client.py
from __future__ import annotations

from collections.abc import Mapping

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

DEFAULT_USER_AGENT = "pf_watch/1.0 (+https://xivpf.com)"

_BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "ja,en;q=0.8",
}


def _retrying_adapter() -> HTTPAdapter:
    # GET-only traffic; 429 and 5xx get three tries with backoff
    retry = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
    )
    return HTTPAdapter(max_retries=retry, pool_connections=4, pool_maxsize=8)


class HttpClient:
    """requests.Session for the HTML pages pf_watch reads (listings, Lodestone)."""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
        cookies: Mapping[str, str] | None = None,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update(_BASE_HEADERS)
        self.session.headers["User-Agent"] = user_agent
        self.session.cookies.update(dict(cookies or {}))
        adapter = _retrying_adapter()
        for scheme in ("http://", "https://"):
            self.session.mount(scheme, adapter)

    def get_text(self, url: str, *, timeout: float | None = None) -> str:
        """GET `url`; raises requests.HTTPError on a final 4xx/5xx."""
        resp = self.session.get(url, timeout=timeout or self.timeout)
        resp.raise_for_status()
        if not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def close(self) -> None:
        self.session.close()
