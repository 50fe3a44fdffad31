"""
Centralized version management for btcwallet-ng.

This is the single source of truth for the project version.
Both packages inherit their version from here.
"""

from __future__ import annotations

# Format: MAJOR.MINOR.PATCH (Semantic Versioning)
__version__ = "0.4.0"
