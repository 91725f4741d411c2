"""Compilation Context - State threaded through one virtual server tree.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from roadconf_core.diagnostics import Warnings
from roadconf_core.document.config import (
    InternalRedirectLocation,
    KeyVal,
    KeyValZone,
    Location,
    Map,
    ReturnLocation,
    SplitClient,
    TwoWaySplitClients,
)
from roadconf_core.location.errorpages import ErrorPageDetails
from roadconf_core.location.location import generate_location
from roadconf_core.naming.namer import UpstreamNamer, VariableNamer, proxy_ssl_name
from roadconf_core.resources.virtualserver import Action, ActionKind, ResourceRef, Split, Upstream, VirtualServerRoute
from roadconf_core.utils.config import ConfigParams

logger = logging.getLogger(__name__)

# One split-clients block per weight pair 0/100 .. 100/0.
WEIGHT_TABLE_SIZE = 101


@dataclass
class RoutingConfig:
    """Everything compiled for one route with splits or matches."""

    maps: List[Map] = field(default_factory=list)
    split_clients: List[SplitClient] = field(default_factory=list)
    locations: List[Location] = field(default_factory=list)
    internal_redirect_location: Optional[InternalRedirectLocation] = None
    return_locations: List[ReturnLocation] = field(default_factory=list)
    key_val_zones: List[KeyValZone] = field(default_factory=list)
    key_vals: List[KeyVal] = field(default_factory=list)
    two_way_split_clients: List[TwoWaySplitClients] = field(default_factory=list)

    def extend(self, other: "RoutingConfig") -> None:
        """Append another config's collections. The redirect location is not merged."""
        self.maps.extend(other.maps)
        self.split_clients.extend(other.split_clients)
        self.locations.extend(other.locations)
        self.return_locations.extend(other.return_locations)
        self.key_val_zones.extend(other.key_val_zones)
        self.key_vals.extend(other.key_vals)
        self.two_way_split_clients.extend(other.two_way_split_clients)


@dataclass
class RouteScope:
    """Settings shared by every location compiled for one route or subroute."""

    path: str
    upstream_namer: UpstreamNamer
    error_pages: ErrorPageDetails = field(default_factory=ErrorPageDetails)
    location_snippets: str = ""
    vsr: Optional[VirtualServerRoute] = None

    @property
    def is_vsr(self) -> bool:
        return self.vsr is not None

    @property
    def vsr_name(self) -> str:
        return self.vsr.name if self.vsr is not None else ""

    @property
    def vsr_namespace(self) -> str:
        return self.vsr.namespace if self.vsr is not None else ""


class CompilationContext:
    """Index allocator and shared inputs for compiling routes.

    Split, match, return-location and error-page indices are handed out
    strictly in call order and never reused, so names derived from them stay
    unique across a virtual server and all of its delegated routes:

        route 1 ───▶ splits 0                          returns 0, 1
        route 2 ───▶ matches 0 ──▶ splits 1..101 (weight table)
        subroute ──▶ matches 1 ──▶ splits 102          returns 2

    Usage:
        ctx = CompilationContext(cfg, VariableNamer(vs), upstreams, warnings)
        index = ctx.allocate_split_index(ctx.split_clients_for(route.splits))
    """

    def __init__(
        self,
        cfg: ConfigParams,
        variable_namer: VariableNamer,
        upstreams: Dict[str, Upstream],
        warnings: Warnings,
        enable_snippets: bool = False,
        dynamic_weights: bool = False,
        owner: Optional[ResourceRef] = None,
    ):
        self.cfg = cfg
        self.owner = owner
        self.variable_namer = variable_namer
        self.upstreams = upstreams
        self.warnings = warnings
        self.enable_snippets = enable_snippets
        self.dynamic_weights = dynamic_weights

        self._next_split = 0
        self._next_matches = 0
        self._next_return = 0
        self._next_error_page = 0

    @property
    def split_index(self) -> int:
        """Next free split-clients index."""
        return self._next_split

    @property
    def matches_index(self) -> int:
        return self._next_matches

    @property
    def return_index(self) -> int:
        return self._next_return

    @property
    def error_page_index(self) -> int:
        return self._next_error_page

    def uses_weight_table(self, splits: List[Split]) -> bool:
        """Two splits with dynamic weights compile to a runtime-selectable table."""
        return self.dynamic_weights and len(splits) == 2

    def split_clients_for(self, splits: List[Split]) -> int:
        """Number of split-clients blocks a split list compiles to."""
        return WEIGHT_TABLE_SIZE if self.uses_weight_table(splits) else 1

    def allocate_split_index(self, count: int = 1) -> int:
        """Reserve ``count`` consecutive split-clients indices, returning the first."""
        index = self._next_split
        self._next_split += count
        return index

    def allocate_matches_index(self) -> int:
        index = self._next_matches
        self._next_matches += 1
        return index

    def allocate_return_index(self) -> int:
        index = self._next_return
        self._next_return += 1
        return index

    def allocate_error_page_index(self, count: int) -> int:
        """Reserve names for ``count`` error page locations, returning the route's index."""
        index = self._next_error_page
        self._next_error_page += count
        return index

    def upstream(self, name: str, owner: Optional[ResourceRef] = None) -> Upstream:
        """Upstream definition an action proxies to.

        An undeclared upstream is reported against ``owner`` and replaced by
        an empty definition, so the rest of the resource still compiles.
        """
        upstream = self.upstreams.get(name)
        if upstream is None:
            logger.warning(f"Upstream {name} is referenced by an action but not defined")
            self.warnings.add(
                owner if owner is not None else self.owner,
                f"Upstream {name} is referenced by an action but not defined",
            )
            upstream = Upstream(name="", service="", port=0)
        return upstream

    def location_for(
        self,
        scope: RouteScope,
        path: str,
        action: Action,
        internal: bool,
    ) -> Tuple[Location, Optional[ReturnLocation]]:
        """Generate the location of one action within a route.

        A return action takes the next return-location index.
        """
        upstream_name = scope.upstream_namer.upstream_for_action(action)
        upstream = None
        ssl_name = ""
        if action.kind in (ActionKind.PASS, ActionKind.PROXY):
            upstream = self.upstream(upstream_name, scope.vsr.ref if scope.is_vsr else None)
            ssl_name = proxy_ssl_name(upstream.service, scope.upstream_namer.namespace)
        return_index = self.allocate_return_index() if action.return_ is not None else 0

        return generate_location(
            path,
            upstream_name,
            upstream,
            action,
            self.cfg,
            scope.error_pages,
            self.warnings,
            internal=internal,
            proxy_ssl_name=ssl_name,
            original_path=scope.path,
            location_snippets=scope.location_snippets,
            enable_snippets=self.enable_snippets,
            return_index=return_index,
            vsr=scope.vsr,
        )


__all__ = [
    "CompilationContext",
    "RouteScope",
    "RoutingConfig",
    "WEIGHT_TABLE_SIZE",
]
