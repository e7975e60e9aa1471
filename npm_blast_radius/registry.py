"""
npm registry metadata access.
"""

from __future__ import annotations

import logging
from typing import Dict

from .fetch import FetchClient
from .models import PackageMetadata


logger = logging.getLogger(__name__)


def encode_package_name(name: str) -> str:
    """Percent-encode the scope separator of a scoped package name."""
    if name.startswith("@"):
        return name.replace("/", "%2F", 1)
    return name


class RegistryClient:
    """Fetch package documents from the configured npm registry."""

    def __init__(self, fetcher: FetchClient) -> None:
        self.fetcher = fetcher
        self.registry_url = fetcher.config.registry_url

    def fetch_package_metadata(self, package_name: str) -> Dict:
        url = f"{self.registry_url}/{encode_package_name(package_name)}"
        logger.debug("Fetching metadata for %s", package_name)
        return self.fetcher.fetch_json(url)

    def get_package(self, package_name: str) -> PackageMetadata:
        return PackageMetadata.from_registry(self.fetch_package_metadata(package_name), name=package_name)
