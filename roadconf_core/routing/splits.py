"""Splits - Weighted traffic splitting.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Static splits compile to one split-clients block keyed by ``$request_id``:

    split_clients $request_id $vs_<ns>_<name>_splits_<n> {
        30% /internal_location_splits_<n>_split_0;
        70% /internal_location_splits_<n>_split_1;
    }

Two splits with dynamic weights compile to a table of every weight pair
instead, one split-clients block per pair. A key-value entry, changed at
runtime, selects the active pair through a map:

    keyval value "vs_<ns>_<name>_split_clients_<n>_30_70"
        ──▶ map ──▶ $vs_<ns>_<name>_split_clients_<n>_30_70 ──▶ split-clients block
"""

from __future__ import annotations

import logging
from typing import List, Tuple

from roadconf_core.document.config import (
    Distribution,
    InternalRedirectLocation,
    KeyVal,
    KeyValZone,
    Map,
    Parameter,
    SplitClient,
    TwoWaySplitClients,
)
from roadconf_core.naming.namer import VariableNamer, split_location_path
from roadconf_core.resources.virtualserver import Split
from roadconf_core.routing.context import WEIGHT_TABLE_SIZE, CompilationContext, RouteScope, RoutingConfig

logger = logging.getLogger(__name__)

SPLIT_CLIENTS_SOURCE = "$request_id"
KEYVAL_ZONE_SIZE = "100k"
KEYVAL_ZONE_BASE_PATH = "/etc/nginx/state_files"


def generate_distributions(splits: List[Split], split_index: int) -> List[Distribution]:
    """Percentage distributions of the non-zero splits.

    A split keeps its position in the path even when earlier splits are
    dropped for a zero weight.
    """
    return [
        Distribution(weight=f"{split.weight}%", value=split_location_path(split_index, i))
        for i, split in enumerate(splits)
        if split.weight != 0
    ]


def default_weights(splits: List[Split]) -> Tuple[int, int]:
    """Weight pair selected while the runtime key is unset.

    The pair favours the heavier split. Equal weights favour the second.
    """
    if splits[0].weight <= splits[1].weight:
        return 0, 100
    return 100, 0


def generate_weight_table(
    splits: List[Split],
    split_index: int,
    namer: VariableNamer,
) -> Tuple[List[SplitClient], Map]:
    """Split-clients blocks for every weight pair and the map selecting one.

    Returns:
        Tuple of (101 split-clients blocks, keyval-to-pair map)
    """
    split_clients = []
    parameters = []
    for i in range(WEIGHT_TABLE_SIZE):
        j = 100 - i
        distributions = []
        if i > 0:
            distributions.append(Distribution(weight=f"{i}%", value=split_location_path(split_index, 0)))
        if j > 0:
            distributions.append(Distribution(weight=f"{j}%", value=split_location_path(split_index, 1)))

        variable = namer.weights_split_clients(split_index, i, j)
        split_clients.append(
            SplitClient(source=SPLIT_CLIENTS_SOURCE, variable=variable, distributions=distributions)
        )
        parameters.append(Parameter(value=namer.weights_map_key(split_index, i, j), result=variable))

    first, second = default_weights(splits)
    parameters.append(Parameter(value="default", result=namer.weights_split_clients(split_index, first, second)))

    weights_map = Map(
        source=namer.keyval(split_index),
        variable=namer.split_clients_map(split_index),
        parameters=parameters,
    )
    return split_clients, weights_map


def split_destination(ctx: CompilationContext, splits: List[Split], split_index: int) -> str:
    """Variable an internal redirect or map result points at for a split list."""
    if ctx.uses_weight_table(splits):
        return ctx.variable_namer.split_clients_map(split_index)
    return ctx.variable_namer.split_clients_variable(split_index)


def generate_splits(
    ctx: CompilationContext,
    scope: RouteScope,
    splits: List[Split],
    split_index: int,
) -> RoutingConfig:
    """Compile a split list whose split-clients indices start at ``split_index``.

    The caller reserves the indices, see :meth:`CompilationContext.split_clients_for`.
    """
    namer = ctx.variable_namer
    result = RoutingConfig()

    if ctx.uses_weight_table(splits):
        split_clients, weights_map = generate_weight_table(splits, split_index, namer)
        zone_name = namer.keyval_zone(split_index)
        result.split_clients.extend(split_clients)
        result.maps.append(weights_map)
        result.key_val_zones.append(
            KeyValZone(name=zone_name, size=KEYVAL_ZONE_SIZE, state=f"{KEYVAL_ZONE_BASE_PATH}/{zone_name}.json")
        )
        result.key_vals.append(
            KeyVal(key=namer.keyval_key(split_index), variable=namer.keyval(split_index), zone_name=zone_name)
        )
        result.two_way_split_clients.append(
            TwoWaySplitClients(
                key=namer.keyval_key(split_index),
                variable=namer.keyval(split_index),
                zone_name=zone_name,
                weights=[splits[0].weight, splits[1].weight],
                split_clients_index=split_index,
            )
        )
    else:
        result.split_clients.append(
            SplitClient(
                source=SPLIT_CLIENTS_SOURCE,
                variable=namer.split_clients_variable(split_index),
                distributions=generate_distributions(splits, split_index),
            )
        )

    for i, split in enumerate(splits):
        # A weight table can shift traffic to any split at runtime, so all stay.
        if split.weight == 0 and not ctx.uses_weight_table(splits):
            logger.debug(f"Skipping zero-weight split {i} of {scope.path}")
            continue
        location, return_location = ctx.location_for(scope, split_location_path(split_index, i), split.action, True)
        result.locations.append(location)
        if return_location is not None:
            result.return_locations.append(return_location)

    return result


def generate_default_splits_config(ctx: CompilationContext, scope: RouteScope, splits: List[Split]) -> RoutingConfig:
    """Compile a route whose only routing form is a split list."""
    split_index = ctx.allocate_split_index(ctx.split_clients_for(splits))
    result = generate_splits(ctx, scope, splits, split_index)
    result.internal_redirect_location = InternalRedirectLocation(
        path=scope.path,
        destination=split_destination(ctx, splits, split_index),
    )
    return result


__all__ = [
    "KEYVAL_ZONE_BASE_PATH",
    "KEYVAL_ZONE_SIZE",
    "SPLIT_CLIENTS_SOURCE",
    "default_weights",
    "generate_default_splits_config",
    "generate_distributions",
    "generate_splits",
    "generate_weight_table",
    "split_destination",
]
