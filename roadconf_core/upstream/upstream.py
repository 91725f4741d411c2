"""Upstreams - Upstream blocks built from services and their endpoints.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from roadconf_core.diagnostics import Warnings
from roadconf_core.document.config import Queue, SessionCookie, UpstreamLabels, UpstreamServer
from roadconf_core.document.config import Upstream as UpstreamBlock
from roadconf_core.naming.namer import UpstreamNamer, generate_endpoints_key, generate_external_name_key
from roadconf_core.resources.snapshot import VirtualServerSnapshot
from roadconf_core.resources.virtualserver import (
    ResourceRef,
    Upstream,
    UpstreamQueue,
    UpstreamTLS,
)
from roadconf_core.resources.virtualserver import SessionCookie as SessionCookieSpec
from roadconf_core.utils.config import ConfigParams, StaticConfigParams
from roadconf_core.utils.helpers import generate_int, generate_time, generate_time_with_default

logger = logging.getLogger(__name__)

# Answers every request with 502 when a service has no endpoints.
NGINX_502_SERVER = "unix:/var/lib/nginx/nginx-502-server.sock"

DEFAULT_QUEUE_TIMEOUT = "60s"

INCOMPATIBLE_LB_METHODS_FOR_SLOW_START = frozenset(
    {
        "random",
        "ip_hash",
        "random two",
        "random two least_conn",
        "random two least_time=header",
        "random two least_time=last_byte",
    }
)


def generate_lb_method(method: str, default_method: str) -> str:
    """Effective load-balancing method. ``round_robin`` is the proxy default."""
    if not method:
        return default_method
    if method == "round_robin":
        return ""
    return method


def is_tls_enabled(upstream: Upstream, has_spiffe_certs: bool, is_internal_route: bool) -> bool:
    """TLS towards an upstream. Internal routes always talk plain text."""
    if is_internal_route:
        return False
    return upstream.tls.enable or has_spiffe_certs


def with_tls(upstream: Upstream, enable: bool) -> Upstream:
    """Copy of an upstream with its TLS setting replaced."""
    return replace(upstream, tls=UpstreamTLS(enable=enable))


def generate_session_cookie(session_cookie: Optional[SessionCookieSpec]) -> Optional[SessionCookie]:
    if session_cookie is None or not session_cookie.enable:
        return None
    return SessionCookie(
        enable=True,
        name=session_cookie.name,
        path=session_cookie.path,
        expires=session_cookie.expires,
        domain=session_cookie.domain,
        http_only=session_cookie.http_only,
        secure=session_cookie.secure,
        same_site=session_cookie.same_site.lower(),
    )


def generate_queue(queue: Optional[UpstreamQueue], default_timeout: str = DEFAULT_QUEUE_TIMEOUT) -> Optional[Queue]:
    if queue is None:
        return None
    return Queue(size=queue.size, timeout=generate_time_with_default(queue.timeout, default_timeout))


class UpstreamGenerator:
    """Turns upstream definitions into upstream blocks.

    Features:
    - Endpoint lookup by service, sub-selector and port
    - ExternalName services resolved at runtime when a resolver exists
    - Global defaults for every unset setting
    - Premium-tier slow start, queue, sticky sessions and NTLM

    Without endpoints, and outside the premium tier, an upstream points at
    a local server answering 502, since the open-source proxy rejects empty
    upstream blocks.

    Usage:
        generator = UpstreamGenerator(cfg, static, warnings)
        endpoints = generator.endpoints(vs.ref, vs.namespace, upstream, snapshot)
        block = generator.generate(vs.ref, name, upstream, False, endpoints, [])
    """

    def __init__(
        self,
        cfg: ConfigParams,
        static: StaticConfigParams,
        warnings: Warnings,
        is_plus: Optional[bool] = None,
    ):
        self.cfg = cfg
        self.static = static
        self.warnings = warnings
        self.is_plus = static.is_plus if is_plus is None else is_plus

    def _external_name_ignored(self, owner: ResourceRef, service: str, upstream: Upstream) -> None:
        self.warnings.add(
            owner,
            f"Type ExternalName service {service} in upstream {upstream.name} will be ignored. "
            f"To use ExternaName services, a resolver must be configured in the ConfigMap",
        )

    def endpoints(
        self,
        owner: ResourceRef,
        namespace: str,
        upstream: Upstream,
        snapshot: VirtualServerSnapshot,
    ) -> List[str]:
        """Backend addresses of an upstream's service."""
        key = generate_endpoints_key(namespace, upstream.service, upstream.subselector, upstream.port)
        endpoints = list(snapshot.endpoints.get(key, []))
        if not self.is_plus and not endpoints:
            return [NGINX_502_SERVER]

        external_key = generate_external_name_key(namespace, upstream.service)
        if external_key in snapshot.external_name_services and not self.static.is_resolver_configured:
            self._external_name_ignored(owner, upstream.service, upstream)
            return []
        return endpoints

    def backup_endpoints(
        self,
        owner: ResourceRef,
        namespace: str,
        upstream: Upstream,
        snapshot: VirtualServerSnapshot,
    ) -> List[str]:
        """Addresses of the backup service. Needs both backup service and port."""
        if not upstream.backup or upstream.backup_port is None:
            return []

        external_key = generate_external_name_key(namespace, upstream.backup)
        if external_key in snapshot.external_name_services and not self.static.is_resolver_configured:
            self._external_name_ignored(owner, upstream.backup, upstream)
            return []

        key = generate_endpoints_key(namespace, upstream.backup, upstream.subselector, upstream.backup_port)
        return list(snapshot.endpoints.get(key, []))

    def slow_start(self, owner: ResourceRef, upstream: Upstream, lb_method: str) -> str:
        if not upstream.slow_start:
            return ""
        if lb_method in INCOMPATIBLE_LB_METHODS_FOR_SLOW_START or lb_method.startswith("hash"):
            self.warnings.add(
                owner,
                f"Slow start will be disabled for upstream {upstream.name} because lb method "
                f"'{lb_method}' is incompatible with slow start",
            )
            return ""
        return generate_time(upstream.slow_start)

    def generate(
        self,
        owner: ResourceRef,
        upstream_name: str,
        upstream: Upstream,
        is_external_name: bool,
        endpoints: List[str],
        backup_endpoints: List[str],
    ) -> UpstreamBlock:
        """Build one upstream block.

        Args:
            owner: Resource declaring the upstream
            upstream_name: Generated block name
            upstream: Upstream definition
            is_external_name: Whether the service is resolved through DNS
            endpoints: Backend addresses
            backup_endpoints: Backup backend addresses

        Returns:
            Upstream block with servers sorted by address
        """
        cfg = self.cfg
        lb_method = generate_lb_method(upstream.lb_method, cfg.lb_method)

        block = UpstreamBlock(
            name=upstream_name,
            labels=UpstreamLabels(
                service=upstream.service,
                resource_type=owner.kind.lower(),
                resource_name=owner.name,
                resource_namespace=owner.namespace,
            ),
            servers=[UpstreamServer(address=e) for e in sorted(endpoints)],
            backup_servers=[UpstreamServer(address=e) for e in sorted(backup_endpoints)],
            resolve=is_external_name,
            lb_method=lb_method,
            keepalive=generate_int(upstream.keepalive, cfg.keepalive),
            max_fails=generate_int(upstream.max_fails, cfg.max_fails),
            fail_timeout=generate_time_with_default(upstream.fail_timeout, cfg.fail_timeout),
            max_conns=generate_int(upstream.max_conns, cfg.max_conns),
            upstream_zone_size=cfg.upstream_zone_size,
        )

        if self.is_plus:
            block.slow_start = self.slow_start(owner, upstream, lb_method)
            block.queue = generate_queue(upstream.queue)
            block.session_cookie = generate_session_cookie(upstream.session_cookie)
            block.ntlm = upstream.ntlm

        return block


def create_upstreams_for_plus(
    snapshot: VirtualServerSnapshot,
    cfg: ConfigParams,
    static: StaticConfigParams,
) -> List[UpstreamBlock]:
    """Upstream blocks for a runtime endpoint refresh on the premium tier.

    ExternalName services are skipped, as the proxy resolves them itself.
    Warnings raised on the way are dropped; a full synthesis pass reports them.
    """
    vs = snapshot.virtual_server
    generator = UpstreamGenerator(cfg, static, Warnings(), is_plus=True)
    upstreams: List[UpstreamBlock] = []

    owners = [(vs.ref, vs.namespace, UpstreamNamer.for_virtual_server(vs), vs.upstreams)]
    for vsr in snapshot.virtual_server_routes:
        owners.append((vsr.ref, vsr.namespace, UpstreamNamer.for_virtual_server_route(vs, vsr), vsr.upstreams))

    for owner, namespace, namer, owner_upstreams in owners:
        for u in owner_upstreams:
            if generate_external_name_key(namespace, u.service) in snapshot.external_name_services:
                logger.debug(f"Service {u.service} is Type ExternalName, skipping NGINX Plus endpoints update via API")
                continue

            endpoints = snapshot.endpoints.get(
                generate_endpoints_key(namespace, u.service, u.subselector, u.port), []
            )
            backup_endpoints: List[str] = []
            if u.backup and u.backup_port is not None:
                backup_endpoints = snapshot.endpoints.get(
                    generate_endpoints_key(namespace, u.backup, u.subselector, u.backup_port), []
                )

            upstreams.append(
                generator.generate(owner, namer.upstream(u.name), u, False, endpoints, backup_endpoints)
            )

    return upstreams


__all__ = [
    "INCOMPATIBLE_LB_METHODS_FOR_SLOW_START",
    "NGINX_502_SERVER",
    "UpstreamGenerator",
    "create_upstreams_for_plus",
    "generate_lb_method",
    "generate_queue",
    "generate_session_cookie",
    "is_tls_enabled",
    "with_tls",
]
