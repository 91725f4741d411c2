"""Naming module - Identifiers for upstreams, variables and locations."""

from roadconf_core.naming.namer import (
    INTERNAL_LOCATION_PREFIX,
    UpstreamNamer,
    VariableNamer,
    error_page_name,
    generate_endpoints_key,
    generate_external_name_key,
    match_default_location_path,
    match_location_path,
    proxy_ssl_name,
    return_location_name,
    split_location_path,
    status_match_name,
)

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
