"""Synthesis module - Assembles the configuration document of a virtual server."""

from roadconf_core.synthesis.configurator import (
    VirtualServerConfigurator,
    generate_ssl_config,
    generate_tls_redirect_config,
    remove_duplicate_auth_jwt_claim_sets,
    remove_duplicate_limit_req_zones,
    remove_duplicate_maps,
)

__all__ = [
    "VirtualServerConfigurator",
    "generate_ssl_config",
    "generate_tls_redirect_config",
    "remove_duplicate_auth_jwt_claim_sets",
    "remove_duplicate_limit_req_zones",
    "remove_duplicate_maps",
]
