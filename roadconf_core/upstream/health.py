"""Health Checks - Active health checks for upstream blocks.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import Optional

from roadconf_core.document.config import HealthCheck, StatusMatch
from roadconf_core.location.location import generate_grpc_pass, generate_proxy_pass_protocol
from roadconf_core.naming.namer import status_match_name
from roadconf_core.resources.virtualserver import Upstream
from roadconf_core.utils.config import ConfigParams
from roadconf_core.utils.helpers import generate_time, generate_time_with_default

DEFAULT_INTERVAL = "5s"
DEFAULT_JITTER = "0s"
DEFAULT_KEEPALIVE_TIME = "60s"


def generate_health_check(upstream: Upstream, upstream_name: str, cfg: ConfigParams) -> Optional[HealthCheck]:
    """Build the health check of an upstream.

    Unset settings fall back to fixed defaults, and timeouts to the
    upstream's proxy timeouts and then the global ones.

    Args:
        upstream: Upstream with its final TLS setting
        upstream_name: Generated upstream block name
        cfg: Global defaults

    Returns:
        The health check, or None if the upstream does not enable one
    """
    spec = upstream.health_check
    if spec is None or not spec.enable:
        return None

    hc = HealthCheck(
        name=upstream_name,
        uri="" if upstream.is_grpc else "/",
        interval=DEFAULT_INTERVAL,
        jitter=DEFAULT_JITTER,
        keepalive_time=DEFAULT_KEEPALIVE_TIME,
        fails=1,
        passes=1,
        proxy_pass=f"{generate_proxy_pass_protocol(upstream.tls.enable)}://{upstream_name}",
        proxy_connect_timeout=generate_time_with_default(upstream.proxy_connect_timeout, cfg.proxy_connect_timeout),
        proxy_read_timeout=generate_time_with_default(upstream.proxy_read_timeout, cfg.proxy_read_timeout),
        proxy_send_timeout=generate_time_with_default(upstream.proxy_send_timeout, cfg.proxy_send_timeout),
        grpc_pass=generate_grpc_pass(upstream.is_grpc, upstream.tls.enable, upstream_name),
        is_grpc=upstream.is_grpc,
    )

    if spec.path:
        hc.uri = spec.path
    if spec.interval:
        hc.interval = generate_time(spec.interval)
    if spec.jitter:
        hc.jitter = generate_time(spec.jitter)
    if spec.keepalive_time:
        hc.keepalive_time = generate_time(spec.keepalive_time)
    if spec.fails > 0:
        hc.fails = spec.fails
    if spec.passes > 0:
        hc.passes = spec.passes
    if spec.port > 0:
        hc.port = spec.port
    if spec.connect_timeout:
        hc.proxy_connect_timeout = generate_time(spec.connect_timeout)
    if spec.read_timeout:
        hc.proxy_read_timeout = generate_time(spec.read_timeout)
    if spec.send_timeout:
        hc.proxy_send_timeout = generate_time(spec.send_timeout)

    for header in spec.headers:
        hc.headers[header.name] = header.value

    # The check may use its own TLS setting.
    if spec.tls is not None:
        hc.proxy_pass = f"{generate_proxy_pass_protocol(spec.tls.enable)}://{upstream_name}"

    if spec.status_match:
        hc.match = status_match_name(upstream_name)

    hc.mandatory = spec.mandatory
    hc.persistent = spec.mandatory and spec.persistent
    hc.grpc_status = spec.grpc_status
    hc.grpc_service = spec.grpc_service

    return hc


def generate_status_match(upstream_name: str, status: str) -> StatusMatch:
    return StatusMatch(name=status_match_name(upstream_name), code=status)


__all__ = [
    "generate_health_check",
    "generate_status_match",
]
