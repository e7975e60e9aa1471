"""Shared fakes for tests: no test touches the network or sleeps."""

from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from npm_blast_radius.config import BlastRadiusConfig
from npm_blast_radius.fetch import FetchClient


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        json_data: Any = None,
        text: str = "",
        headers: Optional[Dict[str, str]] = None,
        reason: str = "",
        chunks: Optional[List[bytes]] = None,
    ) -> None:
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.chunks = chunks
        self.headers = headers or {}
        self.reason = reason or {200: "OK", 404: "Not Found", 429: "Too Many Requests",
                                 500: "Internal Server Error"}.get(status_code, "")
        self.closed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json

    def iter_content(self, chunk_size: int = 1):
        if self.chunks is not None:
            yield from self.chunks
        elif self.text:
            yield self.text.encode("utf-8")

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Route GET requests to a handler; an Exception result is raised."""

    def __init__(self, handler: Callable[[str], Any]) -> None:
        self.handler = handler
        self.calls: List[Dict[str, Any]] = []

    def get(self, url, headers=None, timeout=None, stream=False):
        self.calls.append({"url": url, "headers": dict(headers or {}), "timeout": timeout, "stream": stream})
        result = self.handler(url)
        if isinstance(result, Exception):
            raise result
        return result


def query(url: str) -> Dict[str, str]:
    return {key: values[0] for key, values in parse_qs(urlsplit(url).query).items()}


@pytest.fixture
def config() -> BlastRadiusConfig:
    return BlastRadiusConfig(
        registry_url="https://registry.example.test",
        search_url="https://search.example.test/v2/search",
        libraries_io_url="https://libraries.example.test/api/npm",
        website_url="https://www.example.test",
    )


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def make_fetcher(config, sleeps):
    def factory(handler, cfg: Optional[BlastRadiusConfig] = None, **kwargs) -> FetchClient:
        session = FakeSession(handler)
        return FetchClient(cfg or config, session=session, sleep=sleeps.append, **kwargs)

    return factory


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection reset")
