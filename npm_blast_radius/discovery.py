"""
Cascade over dependent sources, merging their results with provenance.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence

from .config import BlastRadiusConfig
from .fetch import FetchClient, FetchError
from .interfaces import DependentSource
from .models import DiscoveryResult
from .sources import LibrariesIoSource, NpmsSearchSource, NpmWebsiteSource, SourceUnavailableError


logger = logging.getLogger(__name__)


def default_sources(fetcher: FetchClient, config: BlastRadiusConfig) -> List[DependentSource]:
    """The standard cascade: search index, then Libraries.io, then the website."""
    return [
        NpmsSearchSource(fetcher, config),
        LibrariesIoSource(fetcher, config),
        NpmWebsiteSource(fetcher, config),
    ]


class DependentDiscovery:
    """Find the direct dependents of a package across an ordered list of sources.

    Each source runs only while more dependents are wanted: below the cap when
    one is set, or when nothing has been found yet otherwise. The first source
    to report a name owns it; later sources never re-tag it.
    """

    def __init__(self, sources: Sequence[DependentSource]) -> None:
        self.sources = list(sources)

    def discover(self, package_name: str, max_dependents: int = 0) -> DiscoveryResult:
        sources_by_name: Dict[str, str] = {}
        stats = {source.name: 0 for source in self.sources}

        for source in self.sources:
            if not self._wants_more(len(sources_by_name), max_dependents):
                break
            if not source.is_enabled():
                logger.debug("[%s] %s source disabled", package_name, source.name)
                continue

            remaining = max(0, max_dependents - len(sources_by_name)) if max_dependents else 0
            try:
                names = source.discover(package_name, remaining)
            except (SourceUnavailableError, FetchError) as e:
                logger.warning("[%s] %s source failed: %s", package_name, source.name, e)
                continue

            added = 0
            for name in names:
                if max_dependents and len(sources_by_name) >= max_dependents:
                    break
                if name in sources_by_name:
                    continue
                sources_by_name[name] = source.name
                added += 1
            stats[source.name] += added
            logger.debug(
                "[%s] %s added %d (requested up to %s)",
                package_name, source.name, added, remaining or "all",
            )

        return DiscoveryResult(
            package=package_name,
            names=tuple(sources_by_name),
            sources=sources_by_name,
            stats=stats,
        )

    @staticmethod
    def _wants_more(found: int, max_dependents: int) -> bool:
        if max_dependents:
            return found < max_dependents
        return found == 0
