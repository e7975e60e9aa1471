"""
Locate a dependent's declaration of the target package.
"""

from __future__ import annotations

from typing import Optional, Tuple

from .models import DependencyDeclaration, DependencyKind, PackageManifest, PackageMetadata
from .versions import version_sort_key


def match_manifest(
    manifest: PackageManifest,
    target: str,
    include_dev: bool = False,
    include_peer: bool = True,
) -> Optional[Tuple[str, str]]:
    """Return (range, kind) for the first section naming ``target``.

    Sections are checked as dependencies, then peerDependencies, then
    devDependencies.
    """
    if target in manifest.dependencies:
        return manifest.dependencies[target], DependencyKind.REGULAR
    if include_peer and target in manifest.peer_dependencies:
        return manifest.peer_dependencies[target], DependencyKind.PEER
    if include_dev and target in manifest.dev_dependencies:
        return manifest.dev_dependencies[target], DependencyKind.DEV
    return None


def find_dependency_declaration(
    metadata: PackageMetadata,
    target: str,
    include_dev: bool = False,
    include_peer: bool = True,
) -> DependencyDeclaration:
    """Find the range under which ``metadata`` depends on ``target``.

    The ``latest`` manifest is preferred. Otherwise versions are scanned from
    highest to lowest precedence and the first declaring one wins. A package
    that never declares the target yields a declaration with no range.
    """
    latest_tag = metadata.latest_tag
    latest = metadata.versions.get(latest_tag) if latest_tag else None

    if latest is not None:
        hit = match_manifest(latest, target, include_dev, include_peer)
        if hit is not None:
            return DependencyDeclaration(
                range=hit[0],
                matched_version=latest_tag,
                kind=hit[1],
                latest_version=latest_tag,
            )

    for version in sorted(metadata.versions, key=version_sort_key, reverse=True):
        if version == latest_tag:
            continue
        hit = match_manifest(metadata.versions[version], target, include_dev, include_peer)
        if hit is not None:
            return DependencyDeclaration(
                range=hit[0],
                matched_version=version,
                kind=hit[1],
                latest_version=latest_tag,
            )

    return DependencyDeclaration(range=None, matched_version="", kind=None, latest_version=latest_tag)
