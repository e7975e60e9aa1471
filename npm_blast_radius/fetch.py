"""
HTTP fetching with timeouts, bounded retries and rate-limit handling.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from . import __version__
from .config import BlastRadiusConfig


logger = logging.getLogger(__name__)

USER_AGENT = f"npm-blast-radius/{__version__} (+https://www.npmjs.com)"
JSON_ACCEPT = "application/json"
HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

BACKOFF_UNIT_SECONDS = 0.5
MAX_RATE_LIMIT_WAIT_SECONDS = 60
MIN_TIMEOUT_MS = 1000
BODY_CHUNK_BYTES = 64 * 1024


class FetchError(RuntimeError):
    """Raised when a request still fails after the retry budget is spent."""

    def __init__(self, message: str, url: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


def rate_limit_delay(response: requests.Response, consecutive: int) -> float:
    """Seconds to wait after a 429: Retry-After if usable, else capped exponential.

    ``consecutive`` counts the 429s already waited out in a row, so the
    fallback delay runs 2, 4, 8, ... seconds up to the cap.
    """
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            seconds = float(retry_after)
        except ValueError:
            seconds = 0.0
        if seconds > 0:
            return seconds
    return float(min(MAX_RATE_LIMIT_WAIT_SECONDS, 2 ** consecutive * 2))


def read_body(response: requests.Response, deadline: float, clock: Callable[[], float]) -> None:
    """Download the body of a streamed response, giving up at ``deadline``.

    Raises:
        requests.Timeout: when the body is still arriving at the deadline.
    """
    chunks = []
    for chunk in response.iter_content(chunk_size=BODY_CHUNK_BYTES):
        if clock() > deadline:
            response.close()
            raise requests.Timeout("Response body did not arrive within the request timeout")
        chunks.append(chunk)
    response._content = b"".join(chunks)


class FetchClient:
    """Issue GET requests against the registry and discovery sources.

    ``max_rate_limit_waits`` bounds how many 429s one call sits through;
    None waits them out indefinitely.
    """

    def __init__(
        self,
        config: BlastRadiusConfig,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        max_rate_limit_waits: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.sleep = sleep
        self.max_rate_limit_waits = max_rate_limit_waits
        self.clock = clock

    def fetch_json(
        self,
        url: str,
        retries: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """GET a URL and decode its JSON body.

        Raises:
            FetchError: after the retry budget is exhausted, or when a
                successful response does not carry valid JSON.
        """
        response = self._request(url, JSON_ACCEPT, retries, timeout_ms, headers)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {url}: {e}", url, response.status_code) from e

    def fetch_text(
        self,
        url: str,
        retries: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> str:
        """GET a URL as text. Returns an empty string once retries run out."""
        try:
            return self._request(url, HTML_ACCEPT, retries, timeout_ms, headers).text
        except FetchError as e:
            logger.debug("Giving up on %s: %s", url, e)
            return ""

    def build_headers(self, url: str, accept: str, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": accept}
        if self.config.npm_token and url.startswith(self.config.registry_url):
            headers["Authorization"] = f"Bearer {self.config.npm_token}"
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        url: str,
        accept: str,
        retries: Optional[int],
        timeout_ms: Optional[int],
        headers: Optional[Dict[str, str]],
    ) -> requests.Response:
        retries = self.config.retries if retries is None else retries
        timeout = max(MIN_TIMEOUT_MS, timeout_ms or self.config.timeout_ms) / 1000
        request_headers = self.build_headers(url, accept, headers)

        attempt = 0
        rate_limit_waits = 0
        while attempt <= retries:
            deadline = self.clock() + timeout
            try:
                response = self.session.get(url, headers=request_headers, timeout=timeout, stream=True)
                if response.ok:
                    read_body(response, deadline, self.clock)
            except requests.RequestException as e:
                if attempt == retries:
                    raise FetchError(f"Fetch error for {url}: {e}", url) from e
                logger.debug("Request to %s failed (attempt %d): %s", url, attempt + 1, e)
                self.sleep((attempt + 1) * BACKOFF_UNIT_SECONDS)
                attempt += 1
                rate_limit_waits = 0
                continue

            if response.status_code == 429:
                response.close()
                if self.max_rate_limit_waits is not None and rate_limit_waits >= self.max_rate_limit_waits:
                    raise FetchError(f"Rate limited too many times for {url}", url, 429)
                wait = rate_limit_delay(response, rate_limit_waits)
                rate_limit_waits += 1
                logger.info("Rate limited by %s, waiting %.1fs", url, wait)
                self.sleep(wait)
                continue

            rate_limit_waits = 0
            if response.ok:
                return response

            response.close()
            if attempt == retries:
                raise FetchError(
                    f"Fetch failed {response.status_code} {response.reason} for {url}",
                    url,
                    response.status_code,
                )
            logger.debug("HTTP %s for %s (attempt %d)", response.status_code, url, attempt + 1)
            self.sleep((attempt + 1) * BACKOFF_UNIT_SECONDS)
            attempt += 1

        raise FetchError(f"Fetch failed for {url}", url)
