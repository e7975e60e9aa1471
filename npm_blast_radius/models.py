"""
Core data models for blast-radius analysis.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class DependencyKind:
    """Manifest section a dependency declaration was found in."""

    REGULAR = "dep"
    PEER = "peer"
    DEV = "dev"


def _mapping_or_empty(value: Any) -> Dict:
    return dict(value) if isinstance(value, Mapping) else {}


def _string_mapping(value: Any) -> Dict[str, str]:
    """Keep only str -> str pairs from a loosely shaped JSON object."""
    return {
        key: item
        for key, item in _mapping_or_empty(value).items()
        if isinstance(key, str) and isinstance(item, str)
    }


@dataclass(frozen=True)
class PackageManifest:
    """The dependency sections of one published version."""

    version: str
    dependencies: Dict[str, str] = field(default_factory=dict)
    peer_dependencies: Dict[str, str] = field(default_factory=dict)
    dev_dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_registry(cls, version: str, doc: Mapping) -> "PackageManifest":
        return cls(
            version=version,
            dependencies=_string_mapping(doc.get("dependencies")),
            peer_dependencies=_string_mapping(doc.get("peerDependencies")),
            dev_dependencies=_string_mapping(doc.get("devDependencies")),
        )


@dataclass(frozen=True)
class PackageMetadata:
    """Registry document for a package, reduced to the fields the analysis reads."""

    name: str
    dist_tags: Dict[str, str] = field(default_factory=dict)
    versions: Dict[str, PackageManifest] = field(default_factory=dict)
    time_map: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_registry(cls, doc: Any, name: Optional[str] = None) -> "PackageMetadata":
        """Validate a raw registry document, defaulting every absent field."""
        doc = _mapping_or_empty(doc)
        versions = {
            version: PackageManifest.from_registry(version, manifest)
            for version, manifest in _mapping_or_empty(doc.get("versions")).items()
            if isinstance(version, str) and isinstance(manifest, Mapping)
        }
        doc_name = doc.get("name")
        return cls(
            name=name or (doc_name if isinstance(doc_name, str) else ""),
            dist_tags=_string_mapping(doc.get("dist-tags")),
            versions=versions,
            time_map=_string_mapping(doc.get("time")),
        )

    @property
    def latest_tag(self) -> Optional[str]:
        return self.dist_tags.get("latest") or None

    @property
    def last_update(self) -> Optional[str]:
        return self.time_map.get("modified") or self.time_map.get("created") or None

    def published_at(self, version: Optional[str]) -> Optional[str]:
        if not version:
            return None
        return self.time_map.get(version) or None


@dataclass(frozen=True)
class VersionDate:
    """A normalized version with its publish date."""

    version: str
    released_at: datetime


@dataclass(frozen=True)
class DependencyDeclaration:
    """Where and how a dependent declares the target package."""

    range: Optional[str]
    matched_version: str
    kind: Optional[str]
    latest_version: Optional[str]

    @property
    def is_dev(self) -> bool:
        return self.kind == DependencyKind.DEV

    @property
    def found(self) -> bool:
        return self.range is not None


@dataclass(frozen=True)
class DiscoveryResult:
    """Dependents of one package, with the source that found each first."""

    package: str
    names: Tuple[str, ...]
    sources: Mapping[str, str]
    stats: Mapping[str, int]

    def __post_init__(self) -> None:
        object.__setattr__(self, "sources", MappingProxyType(dict(self.sources)))
        object.__setattr__(self, "stats", MappingProxyType(dict(self.stats)))

    def __len__(self) -> int:
        return len(self.names)

    def source_of(self, name: str) -> str:
        return self.sources.get(name, "")


@dataclass(frozen=True)
class BlastRadiusRecord:
    """One output row: a dependent of a compromised source package."""

    source_package: str
    source_version: str
    dependent: str
    dependent_version_range: str = ""
    dependent_latest_version: str = ""
    last_update: str = ""
    dependent_matched_version: str = ""
    dependency_type: str = ""
    is_dev_dependency: bool = False
    source_version_satisfies: bool = False
    dependent_source: str = ""
    compromised_published_at: str = ""
    dependent_version_published_at: str = ""
    resolved_at_dependent_release: str = ""
    resolved_now: str = ""
    likely_impacted_at_release: bool = False
    still_impacted_now: bool = False
    uses_exact_pin: bool = False
    error: str = ""

    @classmethod
    def failed(
        cls,
        source_package: str,
        source_version: str,
        dependent: str,
        dependent_source: str,
        error: str,
    ) -> "BlastRadiusRecord":
        """Degraded record for a dependent whose analysis raised."""
        return cls(
            source_package=source_package,
            source_version=source_version,
            dependent=dependent,
            dependent_source=dependent_source,
            error=error,
        )

    def to_row(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}
