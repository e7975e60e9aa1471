"""
Blast-radius analysis for one compromised package at a time.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import BlastRadiusConfig
from .discovery import DependentDiscovery
from .fetch import FetchError
from .locator import find_dependency_declaration
from .models import BlastRadiusRecord, DiscoveryResult, PackageMetadata, VersionDate
from .registry import RegistryClient
from .reporting import CsvRowSink
from .resolvers import is_exact_pin, is_impacted, resolve_at_or_before, resolve_now, satisfies
from .time_utils import parse_timestamp
from .versions import build_version_timeline, timeline_versions


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetContext:
    """What is known about the compromised package before dependents are analyzed."""

    name: str
    version: str
    timeline: List[VersionDate]
    all_versions: List[str]
    compromised_published_at: str

    @classmethod
    def build(cls, name: str, version: str, metadata: Optional[PackageMetadata]) -> "TargetContext":
        time_map = metadata.time_map if metadata is not None else {}
        timeline = build_version_timeline(time_map)
        return cls(
            name=name,
            version=version,
            timeline=timeline,
            all_versions=timeline_versions(timeline),
            compromised_published_at=(time_map.get(version, "") if version else ""),
        )


class BlastRadiusAnalyzer:
    """Discover the dependents of a package and assess each one's exposure."""

    TASK_DELAY_SECONDS = 0.05

    def __init__(
        self,
        config: BlastRadiusConfig,
        registry: RegistryClient,
        discovery: DependentDiscovery,
        sink: CsvRowSink,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.registry = registry
        self.discovery = discovery
        self.sink = sink
        self.sleep = sleep
        self._progress_lock = threading.Lock()

    def fetch_target(self, package_name: str) -> Optional[PackageMetadata]:
        try:
            return self.registry.get_package(package_name)
        except FetchError as e:
            logger.warning("[%s] failed to fetch target metadata: %s", package_name, e)
            return None

    def process_package(self, package_name: str, version: str = "") -> int:
        """Analyze every discovered dependent of ``package_name``.

        Returns the number of records written for this package.
        """
        logger.info("[%s] discovering dependents...", package_name)
        target = TargetContext.build(package_name, version, self.fetch_target(package_name))

        result = self.discovery.discover(package_name, self.config.max_dependents)
        logger.info(
            "[%s] found %d dependents (%s)",
            package_name,
            len(result),
            ", ".join(f"{source}:{count}" for source, count in result.stats.items()),
        )
        if not result.names:
            return 0
        return self.analyze_dependents(target, result)

    def analyze_dependents(self, target: TargetContext, result: DiscoveryResult) -> int:
        """Run the per-dependent pipeline on a bounded pool; one record per dependent."""
        total = len(result.names)
        completed = [0]

        def task(dependent: str) -> None:
            record = self.build_record(target, dependent, result.source_of(dependent))
            self.sink.write(record)
            self._report_progress(target.name, completed, total)
            self.sleep(self.TASK_DELAY_SECONDS)

        with ThreadPoolExecutor(max_workers=self.config.concurrency) as executor:
            futures = [executor.submit(task, dependent) for dependent in result.names]
            for future in futures:
                future.result()
        return total

    def build_record(self, target: TargetContext, dependent: str, source: str) -> BlastRadiusRecord:
        """Analyze one dependent, turning any failure into a degraded record."""
        try:
            return self.analyze_dependent(target, dependent, source)
        except Exception as e:
            logger.warning("[%s] error analyzing %s: %s", target.name, dependent, e)
            return BlastRadiusRecord.failed(
                source_package=target.name,
                source_version=target.version,
                dependent=dependent,
                dependent_source=source,
                error=str(e) or e.__class__.__name__,
            )

    def analyze_dependent(self, target: TargetContext, dependent: str, source: str) -> BlastRadiusRecord:
        metadata = self.registry.get_package(dependent)
        declaration = find_dependency_declaration(
            metadata, target.name, self.config.include_dev, self.config.include_peer
        )
        version_to_use = declaration.matched_version or declaration.latest_version or ""
        dependent_published_at = metadata.published_at(version_to_use) or ""

        resolved_at_release = None
        resolved_today = None
        if declaration.range:
            if version_to_use:
                resolved_at_release = resolve_at_or_before(
                    target.timeline, declaration.range, parse_timestamp(dependent_published_at)
                )
            resolved_today = resolve_now(target.all_versions, declaration.range)

        return BlastRadiusRecord(
            source_package=target.name,
            source_version=target.version,
            dependent=dependent,
            dependent_version_range=declaration.range or "",
            dependent_latest_version=declaration.latest_version or "",
            last_update=metadata.last_update or "",
            dependent_matched_version=declaration.matched_version,
            dependency_type=declaration.kind or "",
            is_dev_dependency=declaration.is_dev,
            source_version_satisfies=satisfies(target.version, declaration.range),
            dependent_source=source,
            compromised_published_at=target.compromised_published_at,
            dependent_version_published_at=dependent_published_at,
            resolved_at_dependent_release=resolved_at_release or "",
            resolved_now=resolved_today or "",
            likely_impacted_at_release=is_impacted(resolved_at_release, target.version),
            still_impacted_now=is_impacted(resolved_today, target.version),
            uses_exact_pin=is_exact_pin(declaration.range, target.version),
        )

    def _report_progress(self, package_name: str, completed: List[int], total: int) -> None:
        with self._progress_lock:
            completed[0] += 1
            processed = completed[0]
        if processed % self.config.progress_every == 0 or processed == total:
            logger.info("[%s] processed %d/%d", package_name, processed, total)
