"""
Thin HTTP client for upstream imagery hosts.

Usage:
    client = UpstreamClient(timeout=15.0, max_redirects=5)
    resp = client.fetch("https://slider.cira.colostate.edu/data/...png")
    # resp.status_code, resp.headers, resp.content

Connection errors, timeouts and redirect loops raise UpstreamError; any HTTP
response (2xx or not) is returned as an UpstreamResponse so the caller can
forward it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import requests


log = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "peepsat-proxy/0.3"


class UpstreamError(RuntimeError):
    """The upstream host could not be reached (network, timeout, redirects)."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason


@dataclass
class UpstreamResponse:
    status_code: int
    content: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content_type(self) -> Optional[str]:
        for k, v in self.headers.items():
            if k.lower() == "content-type":
                return v
        return None


class UpstreamClient:
    def __init__(
        self,
        *,
        timeout: float = 15.0,
        max_redirects: int = 5,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[requests.Session] = None,
    ):
        """
        Params:
            timeout: per-request connect/read timeout in seconds (must be finite)
            max_redirects: redirect hops followed before giving up
            user_agent: User-Agent sent upstream
            session: optional requests.Session for connection reuse
        """
        if timeout is None or timeout <= 0:
            raise ValueError("timeout must be a positive number of seconds")
        self.timeout = float(timeout)
        self.max_redirects = int(max_redirects)
        self.session = session or requests.Session()
        self.session.max_redirects = self.max_redirects
        self.session.headers.update({"User-Agent": user_agent})

    def fetch(self, url: str) -> UpstreamResponse:
        """
        GET `url`. Returns the response whatever its status; raises UpstreamError
        when no response could be obtained.
        """
        try:
            r = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.TooManyRedirects as e:
            raise UpstreamError(url, f"more than {self.max_redirects} redirects") from e
        except requests.Timeout as e:
            raise UpstreamError(url, f"timed out after {self.timeout:g}s") from e
        except requests.RequestException as e:
            raise UpstreamError(url, f"request failed: {e.__class__.__name__}") from e

        headers = {str(k): str(v) for k, v in dict(r.headers or {}).items()}
        log.debug("Upstream %s -> %s (%d bytes)", url, r.status_code, len(r.content or b""))
        return UpstreamResponse(status_code=int(r.status_code), content=r.content or b"", headers=headers)
