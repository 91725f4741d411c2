"""Virtual Server Configurator - Assemble one configuration document.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from roadconf_core.diagnostics import Warnings
from roadconf_core.document.config import (
    SSL,
    APIKeyClient,
    AuthJWTClaimSet,
    ErrorPageLocation,
    HealthCheck,
    InternalRedirectLocation,
    JWTAuth,
    KeyVal,
    KeyValZone,
    LimitReqZone,
    Location,
    Map,
    ReturnLocation,
    Server,
    SplitClient,
    StatusMatch,
    TLSRedirect,
    TwoWaySplitClients,
    Upstream as UpstreamBlock,
    VirtualServerConfig,
)
from roadconf_core.location.errorpages import (
    ErrorPageDetails,
    count_error_page_locations,
    generate_error_page_locations,
)
from roadconf_core.naming.namer import UpstreamNamer, VariableNamer, generate_external_name_key
from roadconf_core.policy.auth import generate_api_key_client_map
from roadconf_core.policy.resolver import PolicyResolver
from roadconf_core.policy.results import (
    ROUTE_CONTEXT,
    SPEC_CONTEXT,
    SUBROUTE_CONTEXT,
    OwnerDetails,
    PolicyOptions,
    ResolvedPolicyConfig,
)
from roadconf_core.policy.waf import BundleValidator
from roadconf_core.resources.secrets import SecretReference, SecretType, lookup_secret
from roadconf_core.resources.snapshot import VirtualServerSnapshot
from roadconf_core.resources.virtualserver import (
    TLS,
    PolicyReference,
    ResourceRef,
    Route,
    Upstream,
    VirtualServer,
    VirtualServerRoute,
)
from roadconf_core.routing.context import CompilationContext, RouteScope, RoutingConfig
from roadconf_core.routing.matches import generate_matches_config
from roadconf_core.routing.splits import generate_default_splits_config
from roadconf_core.upstream.health import generate_health_check, generate_status_match
from roadconf_core.upstream.upstream import UpstreamGenerator, is_tls_enabled, with_tls
from roadconf_core.utils.config import ConfigParams, StaticConfigParams
from roadconf_core.utils.helpers import generate_snippets

logger = logging.getLogger(__name__)

# Certificate and key used for TLS without a secret when wildcard TLS is on.
WILDCARD_PEM_FILE = "/etc/nginx/secrets/wildcard"


def generate_ssl_config(
    owner: ResourceRef,
    tls: Optional[TLS],
    namespace: str,
    secret_refs: Dict[str, SecretReference],
    cfg: ConfigParams,
    is_wildcard_enabled: bool,
    warnings: Warnings,
) -> Optional[SSL]:
    """TLS termination for a server.

    An unusable secret still yields an SSL block, one that rejects every
    handshake, so the host does not fall through to another server.
    """
    if tls is None:
        return None

    if not tls.secret:
        if is_wildcard_enabled:
            return SSL(http2=cfg.http2, certificate=WILDCARD_PEM_FILE, certificate_key=WILDCARD_PEM_FILE)
        return None

    ref = lookup_secret(secret_refs, f"{namespace}/{tls.secret}")
    name = ""
    reject_handshake = False
    if ref.type and ref.type != SecretType.TLS.value:
        reject_handshake = True
        warnings.add(
            owner,
            f"TLS secret {tls.secret} is of a wrong type '{ref.type}', must be '{SecretType.TLS.value}'",
        )
    elif ref.error:
        reject_handshake = True
        warnings.add(owner, f"TLS secret {tls.secret} is invalid: {ref.error}")
    else:
        name = ref.path

    return SSL(http2=cfg.http2, certificate=name, certificate_key=name, reject_handshake=reject_handshake)


def generate_tls_redirect_based_on(based_on: str) -> str:
    if based_on == "x-forwarded-proto":
        return "$http_x_forwarded_proto"
    return "$scheme"


def generate_tls_redirect_config(tls: Optional[TLS]) -> Optional[TLSRedirect]:
    if tls is None or tls.redirect is None or not tls.redirect.enable:
        return None
    return TLSRedirect(
        code=tls.redirect.code if tls.redirect.code is not None else 301,
        based_on=generate_tls_redirect_based_on(tls.redirect.based_on),
    )


def remove_duplicate_maps(maps: List[Map]) -> List[Map]:
    """Keep the first map for each (source, variable) pair."""
    seen = set()
    result = []
    for m in maps:
        key = (m.source, m.variable)
        if key in seen:
            continue
        seen.add(key)
        result.append(m)
    return result


def remove_duplicate_limit_req_zones(zones: List[LimitReqZone]) -> List[LimitReqZone]:
    """Keep the first zone of each name."""
    seen = set()
    result = []
    for zone in zones:
        if zone.zone_name in seen:
            continue
        seen.add(zone.zone_name)
        result.append(zone)
    return result


def remove_duplicate_auth_jwt_claim_sets(claim_sets: List[AuthJWTClaimSet]) -> List[AuthJWTClaimSet]:
    """Keep the first claim set for each variable."""
    seen = set()
    result = []
    for claim_set in claim_sets:
        if claim_set.variable in seen:
            continue
        seen.add(claim_set.variable)
        result.append(claim_set)
    return result


@dataclass
class _DelegatedDefaults:
    """Settings a delegating route hands down to the subroutes of its resource."""

    location_snippets: Dict[str, str] = field(default_factory=dict)
    error_pages: Dict[str, ErrorPageDetails] = field(default_factory=dict)
    policies: Dict[str, List[PolicyReference]] = field(default_factory=dict)


@dataclass
class _Accumulator:
    """Collections filled while walking the routes of one resource tree."""

    upstreams: List[UpstreamBlock] = field(default_factory=list)
    health_checks: List[HealthCheck] = field(default_factory=list)
    status_matches: List[StatusMatch] = field(default_factory=list)
    maps: List[Map] = field(default_factory=list)
    split_clients: List[SplitClient] = field(default_factory=list)
    locations: List[Location] = field(default_factory=list)
    internal_redirect_locations: List[InternalRedirectLocation] = field(default_factory=list)
    return_locations: List[ReturnLocation] = field(default_factory=list)
    error_page_locations: List[ErrorPageLocation] = field(default_factory=list)
    limit_req_zones: List[LimitReqZone] = field(default_factory=list)
    auth_jwt_claim_sets: List[AuthJWTClaimSet] = field(default_factory=list)
    key_val_zones: List[KeyValZone] = field(default_factory=list)
    key_vals: List[KeyVal] = field(default_factory=list)
    two_way_split_clients: List[TwoWaySplitClients] = field(default_factory=list)
    jwt_auth_list: Dict[str, JWTAuth] = field(default_factory=dict)
    api_key_client_maps: Dict[str, List[APIKeyClient]] = field(default_factory=dict)
    jwks_auth_enabled: bool = False
    api_key_enabled: bool = False

    def add_policies(self, policies: ResolvedPolicyConfig) -> None:
        """Collect the resource-wide parts of a context's policies.

        The first JWKS config and client table of each key wins.
        """
        if policies.jwt.jwks_enabled and policies.jwt.auth is not None:
            self.jwks_auth_enabled = True
            self.jwt_auth_list.setdefault(policies.jwt.auth.key, policies.jwt.auth)
        if policies.api_key.enabled and policies.api_key.key is not None:
            self.api_key_enabled = True
            self.api_key_client_maps.setdefault(policies.api_key.key.map_name, policies.api_key.clients)

        self.limit_req_zones.extend(policies.rate_limit.zones)
        self.maps.extend(policies.rate_limit.group_maps)
        self.maps.extend(policies.rate_limit.policy_group_maps)
        self.auth_jwt_claim_sets.extend(policies.rate_limit.auth_jwt_claim_sets)

    def add_routing(self, routing: RoutingConfig) -> None:
        self.maps.extend(routing.maps)
        self.split_clients.extend(routing.split_clients)
        self.locations.extend(routing.locations)
        if routing.internal_redirect_location is not None:
            self.internal_redirect_locations.append(routing.internal_redirect_location)
        self.return_locations.extend(routing.return_locations)
        self.key_val_zones.extend(routing.key_val_zones)
        self.key_vals.extend(routing.key_vals)
        self.two_way_split_clients.extend(routing.two_way_split_clients)


class VirtualServerConfigurator:
    """Builds the configuration of a virtual server and its delegated routes.

    Pass:
    ┌────────────┐   ┌────────────┐   ┌────────────┐   ┌──────────────┐   ┌────────────┐
    │ TLS + spec │──▶│ Upstreams  │──▶│ VS routes  │──▶│  Subroutes   │──▶│  Dedupe +  │
    │  policies  │   │ VS, routes │   │            │   │ (inherit VS  │   │   sort     │
    └────────────┘   └────────────┘   └────────────┘   │  overrides)  │   └────────────┘
                                                       └──────────────┘

    Every call to :meth:`generate` is an independent pass with its own
    warnings, index counters and OIDC slot.

    Usage:
        configurator = VirtualServerConfigurator(cfg, static)
        vs_config, warnings = configurator.generate(snapshot)
        print(vs_config.to_yaml())
    """

    def __init__(self, cfg: ConfigParams, static: StaticConfigParams):
        self.cfg = cfg
        self.static = static

    def generate(self, snapshot: VirtualServerSnapshot) -> Tuple[VirtualServerConfig, Warnings]:
        """Run one synthesis pass.

        Args:
            snapshot: The virtual server and everything it references

        Returns:
            Tuple of (configuration document, warnings by resource)
        """
        cfg = self.cfg
        static = self.static
        vs = snapshot.virtual_server
        warnings = Warnings()
        acc = _Accumulator()

        resolver = PolicyResolver(
            warnings,
            BundleValidator(static.waf_bundle_path),
            replicas=cfg.ingress_replicas,
        )

        ssl = generate_ssl_config(
            vs.ref, vs.tls, vs.namespace, snapshot.secret_refs, cfg, static.is_wildcard_enabled, warnings
        )
        tls_redirect = generate_tls_redirect_config(vs.tls)
        options = PolicyOptions(
            tls=ssl is not None,
            zone_sync=snapshot.zone_sync,
            secret_refs=snapshot.secret_refs,
            waf_policies=snapshot.waf_policies,
            waf_log_confs=snapshot.waf_log_confs,
        )

        vs_owner = OwnerDetails(vs.ref, vs.namespace, vs.name)
        spec_policies = resolver.resolve(vs_owner, vs.policies, snapshot.policies, SPEC_CONTEXT, "/", options)
        acc.add_policies(spec_policies)

        internal_route = vs.internal_route
        if internal_route and not static.enable_internal_routes:
            warnings.add(
                vs.ref,
                f"Internal Route cannot be configured for virtual server {vs.name}. "
                f"Internal Routes can be enabled by setting the enable-internal-routes flag",
            )
            internal_route = False

        upstream_generator = UpstreamGenerator(cfg, static, warnings)
        upstreams: Dict[str, Upstream] = {}
        self._add_upstreams(
            acc, upstream_generator, upstreams, snapshot, vs.ref, vs.namespace,
            UpstreamNamer.for_virtual_server(vs), vs.upstreams, ssl, internal_route, warnings,
        )
        for vsr in snapshot.virtual_server_routes:
            self._add_upstreams(
                acc, upstream_generator, upstreams, snapshot, vsr.ref, vsr.namespace,
                UpstreamNamer.for_virtual_server_route(vs, vsr), vsr.upstreams, ssl, internal_route, warnings,
            )

        ctx = CompilationContext(
            cfg,
            VariableNamer(vs),
            upstreams,
            warnings,
            enable_snippets=static.enable_snippets,
            dynamic_weights=static.dynamic_weight_changes_reload,
            owner=vs.ref,
        )

        delegated = _DelegatedDefaults()
        vs_namer = UpstreamNamer.for_virtual_server(vs)
        for route in vs.routes:
            self._add_vs_route(acc, ctx, resolver, snapshot, vs, vs_namer, route, spec_policies, options, delegated)

        for vsr in snapshot.virtual_server_routes:
            vsr_namer = UpstreamNamer.for_virtual_server_route(vs, vsr)
            for route in vsr.subroutes:
                self._add_subroute(
                    acc, ctx, resolver, snapshot, vs, vsr, vsr_namer, route, spec_policies, options, delegated
                )

        for map_name, clients in acc.api_key_client_maps.items():
            acc.maps.append(generate_api_key_client_map(map_name, clients))

        server = Server(
            server_name=vs.host,
            status_zone=vs.host,
            gunzip=vs.gunzip,
            http_port=snapshot.http_port,
            https_port=snapshot.https_port,
            http_ipv4=snapshot.http_ipv4,
            http_ipv6=snapshot.http_ipv6,
            https_ipv4=snapshot.https_ipv4,
            https_ipv6=snapshot.https_ipv6,
            custom_listeners=vs.listener is not None,
            proxy_protocol=cfg.proxy_protocol,
            ssl=ssl,
            server_tokens=cfg.server_tokens,
            set_real_ip_from=list(cfg.set_real_ip_from),
            real_ip_header=cfg.real_ip_header,
            real_ip_recursive=cfg.real_ip_recursive,
            snippets=generate_snippets(static.enable_snippets, vs.server_snippets, cfg.server_snippets),
            internal_redirect_locations=acc.internal_redirect_locations,
            locations=acc.locations,
            return_locations=acc.return_locations,
            health_checks=acc.health_checks,
            tls_redirect=tls_redirect,
            error_page_locations=acc.error_page_locations,
            tls_passthrough=static.tls_passthrough,
            disable_ipv6=static.disable_ipv6,
            vs_namespace=vs.namespace,
            vs_name=vs.name,
        )
        spec_policies.apply_to(server)
        server.jwt_auth_list = acc.jwt_auth_list
        server.jwks_auth_enabled = acc.jwks_auth_enabled
        server.ingress_mtls = spec_policies.ingress_mtls
        server.api_key_enabled = acc.api_key_enabled
        server.oidc = resolver.oidc_state.oidc

        vs_config = VirtualServerConfig(
            server=server,
            upstreams=sorted(acc.upstreams, key=lambda u: u.name),
            split_clients=acc.split_clients,
            maps=remove_duplicate_maps(acc.maps),
            status_matches=acc.status_matches,
            limit_req_zones=remove_duplicate_limit_req_zones(acc.limit_req_zones),
            auth_jwt_claim_sets=remove_duplicate_auth_jwt_claim_sets(acc.auth_jwt_claim_sets),
            http_snippets=generate_snippets(static.enable_snippets, vs.http_snippets, []),
            key_val_zones=acc.key_val_zones,
            key_vals=acc.key_vals,
            two_way_split_clients=acc.two_way_split_clients,
            spiffe_certs=internal_route,
            spiffe_client_certs=static.service_mesh_certs and not internal_route,
            dynamic_ssl_reload_enabled=static.dynamic_ssl_reload,
            static_ssl_path=static.static_ssl_path,
        )

        logger.debug(
            f"{vs.key}: {len(vs_config.upstreams)} upstreams, {len(server.locations)} locations, "
            f"{len(vs_config.maps)} maps, {len(warnings)} warnings"
        )
        logger.info(f"Generated configuration for VirtualServer {vs.key}")
        return vs_config, warnings

    def _add_upstreams(
        self,
        acc: _Accumulator,
        generator: UpstreamGenerator,
        upstreams: Dict[str, Upstream],
        snapshot: VirtualServerSnapshot,
        owner: ResourceRef,
        namespace: str,
        namer: UpstreamNamer,
        owner_upstreams: List[Upstream],
        ssl: Optional[SSL],
        internal_route: bool,
        warnings: Warnings,
    ) -> None:
        for u in owner_upstreams:
            if (ssl is None or not self.cfg.http2) and u.is_grpc:
                warnings.add(
                    owner,
                    f"gRPC cannot be configured for upstream {u.name}. "
                    f"gRPC requires enabled HTTP/2 and TLS termination.",
                )

            name = namer.upstream(u.name)
            is_external_name = generate_external_name_key(namespace, u.service) in snapshot.external_name_services
            endpoints = generator.endpoints(owner, namespace, u, snapshot)
            backup_endpoints = generator.backup_endpoints(owner, namespace, u, snapshot)
            acc.upstreams.append(generator.generate(owner, name, u, is_external_name, endpoints, backup_endpoints))

            u = with_tls(u, is_tls_enabled(u, self.static.service_mesh_certs, internal_route))
            upstreams[name] = u

            if not generator.is_plus:
                continue
            hc = generate_health_check(u, name, self.cfg)
            if hc is not None:
                acc.health_checks.append(hc)
                if u.health_check.status_match:
                    acc.status_matches.append(generate_status_match(name, u.health_check.status_match))

    def _compile_route(
        self,
        ctx: CompilationContext,
        scope: RouteScope,
        route: Route,
        policies: ResolvedPolicyConfig,
    ) -> RoutingConfig:
        """Compile a route's routing form and apply its policies to every location."""
        if route.matches:
            routing = generate_matches_config(ctx, scope, route)
        elif route.splits:
            routing = generate_default_splits_config(ctx, scope, route.splits)
        else:
            routing = RoutingConfig()
            location, return_location = ctx.location_for(scope, route.path, route.action, False)
            routing.locations.append(location)
            if return_location is not None:
                routing.return_locations.append(return_location)

        for location in routing.locations:
            policies.apply_to(location)
        return routing

    def _add_vs_route(
        self,
        acc: _Accumulator,
        ctx: CompilationContext,
        resolver: PolicyResolver,
        snapshot: VirtualServerSnapshot,
        vs: VirtualServer,
        namer: UpstreamNamer,
        route: Route,
        spec_policies: ResolvedPolicyConfig,
        options: PolicyOptions,
        delegated: _DelegatedDefaults,
    ) -> None:
        index = ctx.allocate_error_page_index(count_error_page_locations(route.error_pages))
        error_pages = ErrorPageDetails(pages=route.error_pages, index=index, owner=vs.ref)
        acc.error_page_locations.extend(generate_error_page_locations(index, route.error_pages))

        if route.route:
            name = route.route if "/" in route.route else f"{vs.namespace}/{route.route}"
            if route.location_snippets:
                delegated.location_snippets[name] = route.location_snippets
            if route.error_pages:
                delegated.error_pages[name] = error_pages
            if route.policies:
                delegated.policies[name] = route.policies
            return

        owner = OwnerDetails(vs.ref, vs.namespace, vs.name)
        policies = resolver.resolve(owner, route.policies, snapshot.policies, ROUTE_CONTEXT, route.path, options)
        if spec_policies.oidc:
            policies.oidc = True
        acc.add_policies(policies)

        scope = RouteScope(
            path=route.path,
            upstream_namer=namer,
            error_pages=error_pages,
            location_snippets=route.location_snippets,
        )
        acc.add_routing(self._compile_route(ctx, scope, route, policies))

    def _add_subroute(
        self,
        acc: _Accumulator,
        ctx: CompilationContext,
        resolver: PolicyResolver,
        snapshot: VirtualServerSnapshot,
        vs: VirtualServer,
        vsr: VirtualServerRoute,
        namer: UpstreamNamer,
        route: Route,
        spec_policies: ResolvedPolicyConfig,
        options: PolicyOptions,
        delegated: _DelegatedDefaults,
    ) -> None:
        index = ctx.allocate_error_page_index(count_error_page_locations(route.error_pages))
        error_pages = ErrorPageDetails(pages=route.error_pages, index=index, owner=vsr.ref)
        acc.error_page_locations.extend(generate_error_page_locations(index, route.error_pages))

        # Pages inherited from the delegating route reuse its locations.
        inherited = delegated.error_pages.get(vsr.key)
        if not route.error_pages and inherited is not None:
            error_pages = ErrorPageDetails(pages=inherited.pages, index=inherited.index, owner=vsr.ref)

        location_snippets = route.location_snippets or delegated.location_snippets.get(vsr.key, "")

        if route.policies:
            owner = OwnerDetails(vsr.ref, vs.namespace, vs.name)
            refs = route.policies
            context = SUBROUTE_CONTEXT
        else:
            owner = OwnerDetails(vs.ref, vs.namespace, vs.name)
            refs = delegated.policies.get(vsr.key, [])
            context = ROUTE_CONTEXT
        policies = resolver.resolve(owner, refs, snapshot.policies, context, route.path, options)
        if spec_policies.oidc:
            policies.oidc = True
        acc.add_policies(policies)

        scope = RouteScope(
            path=route.path,
            upstream_namer=namer,
            error_pages=error_pages,
            location_snippets=location_snippets,
            vsr=vsr,
        )
        acc.add_routing(self._compile_route(ctx, scope, route, policies))


__all__ = [
    "VirtualServerConfigurator",
    "WILDCARD_PEM_FILE",
    "generate_ssl_config",
    "generate_tls_redirect_config",
    "remove_duplicate_auth_jwt_claim_sets",
    "remove_duplicate_limit_req_zones",
    "remove_duplicate_maps",
]
