"""
Run configuration shared by every component.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_REGISTRY = "https://registry.npmjs.org"
DEFAULT_SEARCH_URL = "https://api.npms.io/v2/search"
DEFAULT_LIBRARIES_IO_URL = "https://libraries.io/api/npm"
DEFAULT_WEBSITE_URL = "https://www.npmjs.com"
DEFAULT_TIMEOUT_MS = 15000
DEFAULT_CONCURRENCY = 8


@dataclass(frozen=True)
class BlastRadiusConfig:
    """Immutable settings for one run, built once at start-up."""

    registry_url: str = DEFAULT_REGISTRY
    search_url: str = DEFAULT_SEARCH_URL
    libraries_io_url: str = DEFAULT_LIBRARIES_IO_URL
    website_url: str = DEFAULT_WEBSITE_URL
    npm_token: Optional[str] = None
    libraries_io_api_key: Optional[str] = None
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retries: int = 3
    concurrency: int = DEFAULT_CONCURRENCY
    max_dependents: int = 0
    include_dev: bool = False
    include_peer: bool = True
    use_libraries_io: bool = True
    use_scrape: bool = True
    progress_every: int = 25

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.retries < 0:
            raise ValueError(f"retries must not be negative, got {self.retries}")
        if self.max_dependents < 0:
            raise ValueError(f"max_dependents must not be negative, got {self.max_dependents}")
        if self.progress_every < 1:
            raise ValueError(f"progress_every must be at least 1, got {self.progress_every}")
        object.__setattr__(self, "registry_url", self.registry_url.rstrip("/"))
        object.__setattr__(self, "libraries_io_url", self.libraries_io_url.rstrip("/"))
        object.__setattr__(self, "website_url", self.website_url.rstrip("/"))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "BlastRadiusConfig":
        """Build a config from environment variables, then apply keyword overrides.

        Overrides whose value is None are ignored so CLI defaults can be passed
        through unconditionally.
        """
        env = os.environ if environ is None else environ
        values = {
            "registry_url": env.get("NPM_REGISTRY") or DEFAULT_REGISTRY,
            "search_url": env.get("NPM_SEARCH_URL") or DEFAULT_SEARCH_URL,
            "npm_token": env.get("NPM_TOKEN") or None,
            "libraries_io_api_key": env.get("LIBRARIES_IO_API_KEY") or None,
            "timeout_ms": _int_from_env(env, "HTTP_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
            "concurrency": _int_from_env(env, "CONCURRENCY", DEFAULT_CONCURRENCY),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    @property
    def libraries_io_enabled(self) -> bool:
        return self.use_libraries_io and bool(self.libraries_io_api_key)


def _int_from_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Environment variable {key} must be an integer, got {raw!r}") from e
