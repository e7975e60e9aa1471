"""
npm blast radius

Map the direct dependents of compromised npm packages and estimate whether
each one resolved, or still resolves, to the compromised version.
"""

__version__ = "0.1.0"

from .cli import main

__all__ = ["main"]
