"""Namer - Stable identifiers derived from resource identity.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

All names are pure functions of resource identity and structural index.
Two routes never share a name because the indices threaded through
compilation never repeat within one virtual server.
"""

from __future__ import annotations

from typing import Dict, Optional

from roadconf_core.resources.virtualserver import Action, VirtualServer, VirtualServerRoute
from roadconf_core.utils.helpers import rfc1123_to_snake

INTERNAL_LOCATION_PREFIX = "internal_location_"


def generate_endpoints_key(namespace: str, service: str, subselector: Optional[Dict[str, str]], port: int) -> str:
    """Key of the endpoint set backing a service port.

    Sub-selector labels are rendered sorted by key, as ``k=v`` joined by commas.
    """
    if subselector:
        selector = ",".join(f"{k}={subselector[k]}" for k in sorted(subselector))
        return f"{namespace}/{service}_{selector}:{port}"
    return f"{namespace}/{service}:{port}"


def generate_external_name_key(namespace: str, service: str) -> str:
    """Key of an ExternalName service."""
    return f"{namespace}/{service}"


class UpstreamNamer:
    """Names upstream blocks of a virtual server or one of its routes."""

    def __init__(self, prefix: str, namespace: str):
        self.prefix = prefix
        self.namespace = namespace

    @classmethod
    def for_virtual_server(cls, vs: VirtualServer) -> "UpstreamNamer":
        return cls(f"vs_{vs.namespace}_{vs.name}", vs.namespace)

    @classmethod
    def for_virtual_server_route(cls, vs: VirtualServer, vsr: VirtualServerRoute) -> "UpstreamNamer":
        return cls(f"vs_{vs.namespace}_{vs.name}_vsr_{vsr.namespace}_{vsr.name}", vsr.namespace)

    def upstream(self, upstream: str) -> str:
        return f"{self.prefix}_{upstream}"

    def upstream_for_action(self, action: Action) -> str:
        return self.upstream(action.upstream)


class VariableNamer:
    """Names variables, maps and key-value zones of a virtual server."""

    def __init__(self, vs: VirtualServer):
        self.safe_ns_name = rfc1123_to_snake(f"{vs.namespace}_{vs.name}")

    def keyval_zone(self, index: int) -> str:
        return f"vs_{self.safe_ns_name}_keyval_zone_split_clients_{index}"

    def keyval(self, index: int) -> str:
        return f"$vs_{self.safe_ns_name}_keyval_split_clients_{index}"

    def keyval_key(self, index: int) -> str:
        return f'"vs_{self.safe_ns_name}_keyval_key_split_clients_{index}"'

    def split_clients_map(self, index: int) -> str:
        return f"$vs_{self.safe_ns_name}_map_split_clients_{index}"

    def weights_map_key(self, index: int, i: int, j: int) -> str:
        return f'"vs_{self.safe_ns_name}_split_clients_{index}_{i}_{j}"'

    def weights_split_clients(self, index: int, i: int, j: int) -> str:
        return f"$vs_{self.safe_ns_name}_split_clients_{index}_{i}_{j}"

    def split_clients_variable(self, index: int) -> str:
        return f"$vs_{self.safe_ns_name}_splits_{index}"

    def matches_condition_map(self, matches_index: int, match_index: int, condition_index: int) -> str:
        return f"$vs_{self.safe_ns_name}_matches_{matches_index}_match_{match_index}_cond_{condition_index}"

    def matches_main_map(self, matches_index: int) -> str:
        return f"$vs_{self.safe_ns_name}_matches_{matches_index}"


def split_location_path(split_index: int, index: int) -> str:
    return f"/{INTERNAL_LOCATION_PREFIX}splits_{split_index}_split_{index}"


def match_location_path(matches_index: int, match_index: int) -> str:
    return f"/{INTERNAL_LOCATION_PREFIX}matches_{matches_index}_match_{match_index}"


def match_default_location_path(matches_index: int) -> str:
    return f"/{INTERNAL_LOCATION_PREFIX}matches_{matches_index}_default"


def return_location_name(index: int) -> str:
    return f"@return_{index}"


def error_page_name(error_page_index: int, index: int) -> str:
    return f"@error_page_{error_page_index}_{index}"


def status_match_name(upstream_name: str) -> str:
    return f"{upstream_name}_match"


def proxy_ssl_name(service: str, namespace: str) -> str:
    return f"{service}.{namespace}.svc"


__all__ = [
    "INTERNAL_LOCATION_PREFIX",
    "UpstreamNamer",
    "VariableNamer",
    "error_page_name",
    "generate_endpoints_key",
    "generate_external_name_key",
    "match_default_location_path",
    "match_location_path",
    "proxy_ssl_name",
    "return_location_name",
    "split_location_path",
    "status_match_name",
]
