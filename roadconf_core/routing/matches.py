"""Matches - Conditional routing through chained maps.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Each condition of a match is a map whose success result is the next
condition's variable, and the last condition's success result is ``1``. A
match therefore evaluates to ``1`` only when all of its conditions hold.

The main map concatenates the first-condition variable of every match and
picks the first match that succeeded:

    $..._match_0_cond_0 $..._match_1_cond_0     main map
    ───────────────────────────────────────     ──────────────────────────────
              "1"               "?"         ──▶ ~^1   /internal_location_matches_<n>_match_0
              "0"               "1"         ──▶ ~^01  /internal_location_matches_<n>_match_1
              "0"               "0"         ──▶ default /internal_location_matches_<n>_default

Usage:
    cfg = generate_matches_config(ctx, scope, route)
    maps.extend(cfg.maps)
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from roadconf_core.document.config import InternalRedirectLocation, Map, Parameter
from roadconf_core.naming.namer import match_default_location_path, match_location_path
from roadconf_core.resources.virtualserver import Condition, Route
from roadconf_core.routing.context import CompilationContext, RouteScope, RoutingConfig
from roadconf_core.routing.splits import generate_splits, split_destination

# Words with a meaning of their own inside a map block.
SPECIAL_MAP_PARAMETERS = frozenset({"default", "hostnames", "include", "volatile"})


def generate_value_for_matches_route_map(matched_value: str) -> Tuple[str, bool]:
    """Map parameter value for a condition value, and whether it is negated.

    Examples:
        "premium" -> ('"premium"', False)
        "!premium" -> ('"premium"', True)
        "default" -> ("\\default", False)
        "" -> ('""', False)
    """
    if not matched_value:
        return '""', False

    is_negative = matched_value.startswith("!")
    if is_negative:
        matched_value = matched_value[1:]

    if matched_value in SPECIAL_MAP_PARAMETERS:
        return f"\\{matched_value}", is_negative
    return f'"{matched_value}"', is_negative


def generate_parameters_for_matches_route_map(matched_value: str, successful_result: str) -> List[Parameter]:
    """Parameters of one condition map. Negation swaps the two results."""
    value, is_negative = generate_value_for_matches_route_map(matched_value)

    value_result = successful_result
    default_result = "0"
    if is_negative:
        value_result = "0"
        default_result = successful_result

    return [
        Parameter(value=value, result=value_result),
        Parameter(value="default", result=default_result),
    ]


def source_for_condition(condition: Condition) -> str:
    """Proxy variable a condition tests."""
    if condition.header:
        return f"$http_{condition.header.replace('-', '_').lower()}"
    if condition.cookie:
        return f"$cookie_{condition.cookie}"
    if condition.argument:
        return f"$arg_{condition.argument}"
    return condition.variable


def generate_matches_config(ctx: CompilationContext, scope: RouteScope, route: Route) -> RoutingConfig:
    """Compile a route with matches and its default action or splits.

    Indices are reserved before any location is generated: first the
    matches index, then split-clients indices for each match with splits in
    order, then for the default splits.
    """
    namer = ctx.variable_namer
    index = ctx.allocate_matches_index()
    result = RoutingConfig()

    for i, match in enumerate(route.matches):
        last = len(match.conditions) - 1
        for j, condition in enumerate(match.conditions):
            successful_result = "1" if j == last else namer.matches_condition_map(index, i, j + 1)
            result.maps.append(
                Map(
                    source=source_for_condition(condition),
                    variable=namer.matches_condition_map(index, i, j),
                    parameters=generate_parameters_for_matches_route_map(condition.value, successful_result),
                )
            )

    match_split_indices: Dict[int, int] = {}
    for i, match in enumerate(route.matches):
        if match.splits:
            match_split_indices[i] = ctx.allocate_split_index(ctx.split_clients_for(match.splits))
    default_split_index: Optional[int] = None
    if route.splits:
        default_split_index = ctx.allocate_split_index(ctx.split_clients_for(route.splits))

    source = ""
    parameters = []
    for i, match in enumerate(route.matches):
        source += namer.matches_condition_map(index, i, 0)
        if i in match_split_indices:
            destination = split_destination(ctx, match.splits, match_split_indices[i])
        else:
            destination = match_location_path(index, i)
        parameters.append(Parameter(value=f"~^{'0' * i}1", result=destination))

    if default_split_index is not None:
        default_destination = split_destination(ctx, route.splits, default_split_index)
    else:
        default_destination = match_default_location_path(index)
    parameters.append(Parameter(value="default", result=default_destination))

    main_variable = namer.matches_main_map(index)
    result.maps.append(Map(source=source, variable=main_variable, parameters=parameters))

    for i, match in enumerate(route.matches):
        if i in match_split_indices:
            result.extend(generate_splits(ctx, scope, match.splits, match_split_indices[i]))
            continue
        location, return_location = ctx.location_for(scope, match_location_path(index, i), match.action, True)
        result.locations.append(location)
        if return_location is not None:
            result.return_locations.append(return_location)

    if default_split_index is not None:
        result.extend(generate_splits(ctx, scope, route.splits, default_split_index))
    else:
        location, return_location = ctx.location_for(scope, match_default_location_path(index), route.action, True)
        result.locations.append(location)
        if return_location is not None:
            result.return_locations.append(return_location)

    result.internal_redirect_location = InternalRedirectLocation(path=route.path, destination=main_variable)
    return result


__all__ = [
    "SPECIAL_MAP_PARAMETERS",
    "generate_matches_config",
    "generate_parameters_for_matches_route_map",
    "generate_value_for_matches_route_map",
    "source_for_condition",
]
