"""Upstream module - Upstream blocks and their health checks."""

from roadconf_core.upstream.health import generate_health_check, generate_status_match
from roadconf_core.upstream.upstream import (
    INCOMPATIBLE_LB_METHODS_FOR_SLOW_START,
    NGINX_502_SERVER,
    UpstreamGenerator,
    create_upstreams_for_plus,
    generate_lb_method,
    is_tls_enabled,
)

__all__ = [
    "INCOMPATIBLE_LB_METHODS_FOR_SLOW_START",
    "NGINX_502_SERVER",
    "UpstreamGenerator",
    "create_upstreams_for_plus",
    "generate_health_check",
    "generate_lb_method",
    "generate_status_match",
    "is_tls_enabled",
]
