"""
Semantic version coercion and publish-time timelines.
"""

from __future__ import annotations

import re
from typing import List, Mapping, Optional, Tuple

from semantic_version import Version

from .models import VersionDate
from .time_utils import parse_timestamp


_COERCE_RE = re.compile(r"(?<!\d)(\d{1,16})(?:\.(\d{1,16}))?(?:\.(\d{1,16}))?")

TIME_MAP_METADATA_KEYS = ("created", "modified")


def coerce_version(value: Optional[str]) -> Optional[Version]:
    """Loosely read a version out of any string, like npm's ``semver.coerce``.

    The first ``major[.minor[.patch]]`` run wins, missing parts become zero,
    and prerelease or build suffixes are discarded.
    """
    if not value or not isinstance(value, str):
        return None
    match = _COERCE_RE.search(value)
    if match is None:
        return None
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return Version(major=major, minor=minor, patch=patch)


def normalize_version(value: Optional[str]) -> Optional[str]:
    coerced = coerce_version(value)
    return str(coerced) if coerced is not None else None


def versions_equal(left: Optional[str], right: Optional[str]) -> bool:
    """Semver equality after coercion; False when either side is unknown."""
    left_version = coerce_version(left)
    right_version = coerce_version(right)
    if left_version is None or right_version is None:
        return False
    return left_version == right_version


def version_sort_key(value: str) -> Tuple[int, Tuple, str]:
    """Total ordering for raw version keys.

    Strict semver keys order by full semver precedence, so ``2.0.0-rc.1``
    sorts below ``2.0.0``. Loose keys order by their coerced release. Equal
    precedence falls back to the raw string. Keys that do not coerce sort
    below every real version, lexically among themselves.
    """
    coerced = coerce_version(value)
    if coerced is None:
        return (0, (), value)
    try:
        precedence = Version(value).precedence_key
    except ValueError:
        precedence = coerced.precedence_key
    return (1, precedence, value)


def build_version_timeline(time_map: Optional[Mapping[str, str]]) -> List[VersionDate]:
    """Turn a registry ``time`` map into an ascending, de-duplicated timeline."""
    if not time_map:
        return []

    seen = set()
    timeline: List[VersionDate] = []
    for key, timestamp in time_map.items():
        if key in TIME_MAP_METADATA_KEYS:
            continue
        version = normalize_version(key)
        if version is None or version in seen:
            continue
        released_at = parse_timestamp(timestamp)
        if released_at is None:
            continue
        seen.add(version)
        timeline.append(VersionDate(version=version, released_at=released_at))

    # sorted() is stable, so equal dates keep time-map order
    return sorted(timeline, key=lambda entry: entry.released_at)


def timeline_versions(timeline: List[VersionDate]) -> List[str]:
    return [entry.version for entry in timeline]
