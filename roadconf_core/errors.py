"""Errors - Exceptions raised for structurally invalid input.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Problems a resource owner can fix are reported as warnings, not raised.
These exceptions cover input that should never reach synthesis.
"""

from __future__ import annotations


class RoadConfError(Exception):
    """Base exception for the package."""

    pass


class ResourceError(RoadConfError):
    """Malformed manifest or resource model."""

    pass


class PolicyKindError(ResourceError):
    """Policy with zero or several kinds set."""

    pass


class BundleNotFoundError(RoadConfError):
    """A firewall bundle is not accessible."""

    pass


__all__ = [
    "RoadConfError",
    "ResourceError",
    "PolicyKindError",
    "BundleNotFoundError",
]
