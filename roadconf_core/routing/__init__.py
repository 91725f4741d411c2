"""Routing module - Splits, matches and the index allocation they share."""

from roadconf_core.routing.context import (
    WEIGHT_TABLE_SIZE,
    CompilationContext,
    RouteScope,
    RoutingConfig,
)
from roadconf_core.routing.matches import generate_matches_config
from roadconf_core.routing.splits import (
    generate_default_splits_config,
    generate_splits,
)

__all__ = [
    "CompilationContext",
    "RouteScope",
    "RoutingConfig",
    "WEIGHT_TABLE_SIZE",
    "generate_default_splits_config",
    "generate_matches_config",
    "generate_splits",
]
