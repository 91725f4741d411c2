"""Policy module - Policy resolution per spec, route and subroute context."""

from roadconf_core.policy.resolver import PolicyResolver
from roadconf_core.policy.results import (
    ROUTE_CONTEXT,
    SPEC_CONTEXT,
    SUBROUTE_CONTEXT,
    OIDCState,
    OwnerDetails,
    PolicyOptions,
    ResolutionStatus,
    ResolvedPolicyConfig,
    ValidationResults,
)
from roadconf_core.policy.waf import BundleValidator

__all__ = [
    "BundleValidator",
    "OIDCState",
    "OwnerDetails",
    "PolicyOptions",
    "PolicyResolver",
    "ResolutionStatus",
    "ResolvedPolicyConfig",
    "ROUTE_CONTEXT",
    "SPEC_CONTEXT",
    "SUBROUTE_CONTEXT",
    "ValidationResults",
]
