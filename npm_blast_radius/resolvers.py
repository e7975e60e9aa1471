"""
Temporal blast-radius resolution.

Publish timestamps stand in for lockfiles: the version a dependent most
likely installed is the highest version of the target that satisfied its
declared range and had already been published when the dependent itself was
released. This is a heuristic, not the resolution algorithm of any real
package manager.

Candidates are always coerced release versions, which lets ranges be
normalized into the forms ``NpmSpec`` evaluates the way npm does.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from functools import lru_cache
from typing import Iterable, Optional, Sequence

from semantic_version import NpmSpec, Version

from .models import VersionDate
from .time_utils import ensure_utc
from .versions import coerce_version, versions_equal


logger = logging.getLogger(__name__)

_OPERATOR_GAP_RE = re.compile(r"(<=|>=|<|>|=|~|\^)\s+")
_PRERELEASE_COMPARATOR_RE = re.compile(
    r"^(?P<op><=|>=|<|>|=)?v?(?P<release>\d+\.\d+\.\d+)-[0-9A-Za-z.-]+(?:\+[0-9A-Za-z.-]+)?$"
)
_HYPHEN = " - "

# What a prerelease-bounded comparator means for release versions
_RELEASE_OPERATORS = {"<": "<", "<=": "<", ">": ">=", ">=": ">="}
_NO_RELEASE = "<0.0.0"


def _release_comparator(block: str) -> str:
    match = _PRERELEASE_COMPARATOR_RE.match(block)
    if match is None:
        return block
    operator = match.group("op") or "="
    if operator == "=":
        return _NO_RELEASE
    return _RELEASE_OPERATORS[operator] + match.group("release")


def normalize_range(range_spec: str) -> str:
    """Rewrite an npm range so ``NpmSpec`` reads it as npm would for releases.

    ``>= 1.2.3`` becomes ``>=1.2.3``, ``~>1.2`` becomes ``~1.2``, and
    comparators bounded by a prerelease are replaced by their release
    equivalent: ``<=2.0.0-rc.1`` is ``<2.0.0``, ``>1.0.0-beta`` is
    ``>=1.0.0`` and an exact prerelease matches no release.
    """
    text = " ".join(range_spec.split()).replace("~>", "~")
    text = _OPERATOR_GAP_RE.sub(r"\1", text)

    groups = []
    for group in text.split("||"):
        group = group.strip()
        if _HYPHEN in group:
            low, high = group.split(_HYPHEN, 1)
            if _PRERELEASE_COMPARATOR_RE.match(high):
                group = f">={low} {_release_comparator('<=' + high)}"
            groups.append(group)
            continue
        groups.append(" ".join(_release_comparator(block) for block in group.split(" ")))
    return " || ".join(groups)


@lru_cache(maxsize=4096)
def parse_range(range_spec: Optional[str]) -> Optional[NpmSpec]:
    """Parse an npm range, or None for tags, URLs, aliases and other non-ranges."""
    if not range_spec or not range_spec.strip():
        return None
    try:
        return NpmSpec(normalize_range(range_spec))
    except ValueError:
        logger.debug("Not a semver range: %r", range_spec)
        return None


def max_satisfying(versions: Iterable[str], range_spec: Optional[str]) -> Optional[str]:
    """Highest of ``versions`` (coerced to releases) that satisfies ``range_spec``."""
    spec = parse_range(range_spec)
    if spec is None:
        return None
    candidates = [version for version in map(coerce_version, versions) if version is not None]
    best = spec.select(candidates)
    return str(best) if best is not None else None


def resolve_at_or_before(
    timeline: Sequence[VersionDate],
    range_spec: Optional[str],
    cutoff: Optional[datetime],
) -> Optional[str]:
    """Version the range would have selected from what was published by ``cutoff``."""
    if not range_spec or cutoff is None or not timeline:
        return None
    cutoff = ensure_utc(cutoff)
    published = [entry.version for entry in timeline if entry.released_at <= cutoff]
    if not published:
        return None
    return max_satisfying(published, range_spec)


def resolve_now(versions: Sequence[str], range_spec: Optional[str]) -> Optional[str]:
    """Version the range would select today from every known version."""
    if not range_spec or not versions:
        return None
    return max_satisfying(versions, range_spec)


def is_impacted(resolved_version: Optional[str], compromised_version: Optional[str]) -> bool:
    return versions_equal(resolved_version, compromised_version)


def is_exact_pin(range_spec: Optional[str], compromised_version: Optional[str] = None) -> bool:
    """True when the range names one exact version (optionally the compromised one)."""
    if not range_spec:
        return False
    text = range_spec.strip()
    if text.startswith("="):
        text = text[1:].lstrip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    try:
        pinned = Version(text)
    except ValueError:
        return False

    compromised = coerce_version(compromised_version)
    if compromised is None:
        return True
    return Version(major=pinned.major, minor=pinned.minor, patch=pinned.patch) == compromised


def satisfies(version: Optional[str], range_spec: Optional[str]) -> bool:
    """Static check: does ``version`` (coerced) fall inside ``range_spec``."""
    coerced = coerce_version(version)
    spec = parse_range(range_spec)
    if coerced is None or spec is None:
        return False
    return spec.match(coerced)
