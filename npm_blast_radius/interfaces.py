"""
Interfaces for dependent discovery sources.
"""

from __future__ import annotations

from typing import List, Protocol


class DependentSource(Protocol):
    """One way of listing the packages that depend on a given package."""

    name: str

    def is_enabled(self) -> bool:
        ...

    def discover(self, package_name: str, remaining: int = 0) -> List[str]:
        """Return dependent names, at most ``remaining`` of them (0 means no cap)."""
        ...
