"""
Dependent discovery sources: npms.io search, Libraries.io, npm website.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional
from urllib.parse import quote, unquote, urlencode

from .config import BlastRadiusConfig
from .fetch import FetchClient, FetchError


logger = logging.getLogger(__name__)


class SourceUnavailableError(RuntimeError):
    """A discovery source reported that it cannot serve this request."""


def _cap_reached(found: int, remaining: int) -> bool:
    return bool(remaining) and found >= remaining


class NpmsSearchSource:
    """Query the npms.io search index for ``<section>:<package>``."""

    name = "npms"
    PAGE_SIZE = 250
    PAGE_DELAY_SECONDS = 0.15

    def __init__(self, fetcher: FetchClient, config: BlastRadiusConfig) -> None:
        self.fetcher = fetcher
        self.config = config

    def is_enabled(self) -> bool:
        return True

    def qualifiers(self) -> List[str]:
        qualifiers = ["dependencies"]
        if self.config.include_dev:
            qualifiers.append("devDependencies")
        if self.config.include_peer:
            qualifiers.append("peerDependencies")
        return qualifiers

    def page_url(self, package_name: str, offset: int, qualifier: str) -> str:
        query = urlencode({"q": f"{qualifier}:{package_name}", "from": offset, "size": self.PAGE_SIZE})
        return f"{self.config.search_url}?{query}"

    def discover(self, package_name: str, remaining: int = 0) -> List[str]:
        found: List[str] = []
        seen = set()
        for qualifier in self.qualifiers():
            if _cap_reached(len(found), remaining):
                break
            offset = 0
            while True:
                url = self.page_url(package_name, offset, qualifier)
                try:
                    data = self.fetcher.fetch_json(url)
                except FetchError as e:
                    logger.warning("[%s] npms.io %s fetch error: %s", package_name, qualifier, e)
                    break

                results = _list_field(data, "results")
                total = _int_field(data, "total")
                logger.debug(
                    "[%s] npms.io %s total=%s from=%d got=%d",
                    package_name, qualifier, total if total is not None else "unknown", offset, len(results),
                )
                if not results:
                    break

                for result in results:
                    name = _search_result_name(result)
                    if not name or name == package_name or name in seen:
                        continue
                    seen.add(name)
                    found.append(name)
                    if _cap_reached(len(found), remaining):
                        break

                offset += len(results)
                if _cap_reached(len(found), remaining):
                    break
                if total is not None and offset >= total:
                    break
                self.fetcher.sleep(self.PAGE_DELAY_SECONDS)
        return found


class LibrariesIoSource:
    """Page through the Libraries.io dependents endpoint."""

    name = "libraries"
    PAGE_SIZE = 100
    MAX_PAGES = 1000
    PAGE_DELAY_SECONDS = 0.15

    def __init__(self, fetcher: FetchClient, config: BlastRadiusConfig) -> None:
        self.fetcher = fetcher
        self.config = config

    def is_enabled(self) -> bool:
        return self.config.libraries_io_enabled

    def page_url(self, package_name: str, page: int) -> str:
        query = urlencode({
            "api_key": self.config.libraries_io_api_key or "",
            "per_page": self.PAGE_SIZE,
            "page": page,
        })
        return f"{self.config.libraries_io_url}/{quote(package_name, safe='')}/dependents?{query}"

    def discover(self, package_name: str, remaining: int = 0) -> List[str]:
        """List dependents.

        Raises:
            SourceUnavailableError: when the API answers with an error object,
                e.g. the endpoint being disabled for performance reasons.
            FetchError: when a page cannot be fetched.
        """
        if not self.config.libraries_io_api_key:
            return []
        found: List[str] = []
        for page in range(1, self.MAX_PAGES):
            if _cap_reached(len(found), remaining):
                break
            data = self.fetcher.fetch_json(self.page_url(package_name, page))
            if not isinstance(data, list):
                if isinstance(data, dict) and data.get("message"):
                    raise SourceUnavailableError(f"libraries.io response: {data['message']}")
                break
            if not data:
                break
            for item in data:
                name = item.get("name") if isinstance(item, dict) else None
                if isinstance(name, str) and name:
                    found.append(name)
                if _cap_reached(len(found), remaining):
                    break
            if len(data) < self.PAGE_SIZE:
                break
            self.fetcher.sleep(self.PAGE_DELAY_SECONDS)
        return found


class NpmWebsiteSource:
    """Scrape the "depended" browse pages of the npm website."""

    name = "scraped"
    PAGE_SIZE = 36
    MAX_OFFSET = 50000
    UNCAPPED_LIMIT = 500
    PAGE_DELAY_SECONDS = 0.4
    PACKAGE_LINK_RE = re.compile(r'href="/package/([^"?#]+)"')
    NON_PACKAGE_MARKERS = ("policies", "signup", "login")

    def __init__(self, fetcher: FetchClient, config: BlastRadiusConfig) -> None:
        self.fetcher = fetcher
        self.config = config

    def is_enabled(self) -> bool:
        return self.config.use_scrape

    def page_url(self, package_name: str, offset: int) -> str:
        return f"{self.config.website_url}/browse/depended/{quote(package_name, safe='')}?offset={offset}"

    def extract_names(self, html: str, package_name: str) -> List[str]:
        names = []
        for match in self.PACKAGE_LINK_RE.finditer(html):
            name = unquote(match.group(1))
            if not name or name == package_name:
                continue
            if any(marker in name for marker in self.NON_PACKAGE_MARKERS):
                continue
            names.append(name)
        return names

    def discover(self, package_name: str, remaining: int = 0) -> List[str]:
        limit = remaining or self.UNCAPPED_LIMIT
        found: List[str] = []
        seen = set()
        for offset in range(0, self.MAX_OFFSET, self.PAGE_SIZE):
            if len(found) >= limit:
                break
            html = self.fetcher.fetch_text(self.page_url(package_name, offset))
            if not html:
                break
            before = len(found)
            for name in self.extract_names(html, package_name):
                if name in seen:
                    continue
                seen.add(name)
                found.append(name)
                if len(found) >= limit:
                    break
            if len(found) == before:
                break
            self.fetcher.sleep(self.PAGE_DELAY_SECONDS)
        return found


def _list_field(data: Any, key: str) -> List:
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, list) else []


def _int_field(data: Any, key: str) -> Optional[int]:
    value = data.get(key) if isinstance(data, dict) else None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _search_result_name(result: Any) -> Optional[str]:
    package = result.get("package") if isinstance(result, dict) else None
    name = package.get("name") if isinstance(package, dict) else None
    return name if isinstance(name, str) and name else None
