"""Loader - Build the resource model from manifests.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Manifests are Kubernetes-style dictionaries with ``kind``, ``metadata`` and
a camelCase ``spec``. YAML input may hold several documents.

Usage:
    resources = load_manifests(open("vs.yaml").read())
    vs = resources.virtual_servers[0]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import yaml

from roadconf_core.errors import PolicyKindError, ResourceError
from roadconf_core.resources.policy import (
    APIKey,
    AccessControl,
    BasicAuth,
    EgressMTLS,
    IngressMTLS,
    JWTAuth,
    JWTCondition,
    OIDC,
    Policy,
    PolicyKind,
    RateLimit,
    RateLimitCondition,
    SecurityLog,
    SuppliedIn,
    VariableCondition,
    WAF,
)
from roadconf_core.resources.virtualserver import (
    TLS,
    Action,
    ActionProxy,
    ActionRedirect,
    ActionReturn,
    AddHeader,
    Condition,
    ErrorPage,
    ErrorPageRedirect,
    ErrorPageReturn,
    Header,
    HealthCheck,
    Listener,
    Match,
    PolicyReference,
    ProxyRequestHeaders,
    ProxyResponseHeaders,
    Route,
    SessionCookie,
    Split,
    TLSRedirect,
    Upstream,
    UpstreamBuffers,
    UpstreamQueue,
    UpstreamTLS,
    VirtualServer,
    VirtualServerRoute,
)

logger = logging.getLogger(__name__)


@dataclass
class LoadedResources:
    """Resources found in a set of manifests, in input order."""

    virtual_servers: List[VirtualServer] = field(default_factory=list)
    virtual_server_routes: List[VirtualServerRoute] = field(default_factory=list)
    policies: List[Policy] = field(default_factory=list)

    def policy_catalog(self) -> Dict[str, Policy]:
        """Policies keyed by ``namespace/name``."""
        return {p.key: p for p in self.policies}


def _headers(items: Optional[List[Dict[str, Any]]]) -> List[Header]:
    return [Header(name=h["name"], value=h.get("value", "")) for h in items or []]


def _action(data: Optional[Dict[str, Any]]) -> Optional[Action]:
    if not data:
        return None

    action = Action(pass_=data.get("pass", ""))
    if "redirect" in data:
        r = data["redirect"]
        action.redirect = ActionRedirect(url=r["url"], code=r.get("code", 0))
    if "return" in data:
        r = data["return"]
        action.return_ = ActionReturn(
            code=r.get("code", 0),
            type=r.get("type", ""),
            body=r.get("body", ""),
            headers=_headers(r.get("headers")),
        )
    if "proxy" in data:
        p = data["proxy"]
        request_headers = None
        if "requestHeaders" in p:
            rh = p["requestHeaders"]
            request_headers = ProxyRequestHeaders(pass_=rh.get("pass"), set=_headers(rh.get("set")))
        response_headers = None
        if "responseHeaders" in p:
            rh = p["responseHeaders"]
            response_headers = ProxyResponseHeaders(
                hide=list(rh.get("hide", [])),
                pass_=list(rh.get("pass", [])),
                ignore=list(rh.get("ignore", [])),
                add=[
                    AddHeader(name=h["name"], value=h.get("value", ""), always=h.get("always", False))
                    for h in rh.get("add", [])
                ],
            )
        action.proxy = ActionProxy(
            upstream=p["upstream"],
            request_headers=request_headers,
            response_headers=response_headers,
            rewrite_path=p.get("rewritePath", ""),
        )

    set_fields = [k for k in ("pass", "redirect", "return", "proxy") if data.get(k)]
    if len(set_fields) != 1:
        raise ResourceError(f"Action must set exactly one of pass, redirect, return, proxy; got {set_fields}")
    return action


def _splits(items: Optional[List[Dict[str, Any]]]) -> List[Split]:
    return [Split(weight=s.get("weight", 0), action=_action(s.get("action"))) for s in items or []]


def _matches(items: Optional[List[Dict[str, Any]]]) -> List[Match]:
    matches = []
    for m in items or []:
        conditions = [
            Condition(
                value=c.get("value", ""),
                header=c.get("header", ""),
                cookie=c.get("cookie", ""),
                argument=c.get("argument", ""),
                variable=c.get("variable", ""),
            )
            for c in m.get("conditions", [])
        ]
        matches.append(Match(conditions=conditions, action=_action(m.get("action")), splits=_splits(m.get("splits"))))
    return matches


def _error_pages(items: Optional[List[Dict[str, Any]]]) -> List[ErrorPage]:
    pages = []
    for e in items or []:
        page = ErrorPage(codes=list(e.get("codes", [])))
        if "return" in e:
            r = e["return"]
            page.return_ = ErrorPageReturn(
                body=r.get("body", ""),
                code=r.get("code", 0),
                type=r.get("type", ""),
                headers=_headers(r.get("headers")),
            )
        if "redirect" in e:
            r = e["redirect"]
            page.redirect = ErrorPageRedirect(url=r["url"], code=r.get("code", 0))
        pages.append(page)
    return pages


def _policy_refs(items: Optional[List[Dict[str, Any]]]) -> List[PolicyReference]:
    return [PolicyReference(name=p["name"], namespace=p.get("namespace", "")) for p in items or []]


def _route(data: Dict[str, Any]) -> Route:
    route = Route(
        path=data["path"],
        action=_action(data.get("action")),
        splits=_splits(data.get("splits")),
        matches=_matches(data.get("matches")),
        route=data.get("route", ""),
        policies=_policy_refs(data.get("policies")),
        error_pages=_error_pages(data.get("errorPages")),
        location_snippets=data.get("location-snippets", ""),
    )
    route.validate()
    return route


def _health_check(data: Optional[Dict[str, Any]]) -> Optional[HealthCheck]:
    if not data:
        return None
    return HealthCheck(
        enable=data.get("enable", False),
        path=data.get("path", ""),
        interval=data.get("interval", ""),
        jitter=data.get("jitter", ""),
        keepalive_time=data.get("keepalive-time", ""),
        fails=data.get("fails", 0),
        passes=data.get("passes", 0),
        port=data.get("port", 0),
        tls=UpstreamTLS(enable=data["tls"].get("enable", False)) if "tls" in data else None,
        connect_timeout=data.get("connect-timeout", ""),
        read_timeout=data.get("read-timeout", ""),
        send_timeout=data.get("send-timeout", ""),
        headers=_headers(data.get("headers")),
        status_match=data.get("statusMatch", ""),
        grpc_status=data.get("grpcStatus"),
        grpc_service=data.get("grpcService", ""),
        mandatory=data.get("mandatory", False),
        persistent=data.get("persistent", False),
    )


def _upstream(data: Dict[str, Any]) -> Upstream:
    buffers = data.get("buffers")
    queue = data.get("queue")
    cookie = data.get("sessionCookie")
    return Upstream(
        name=data["name"],
        service=data["service"],
        port=data["port"],
        subselector=dict(data.get("subselector", {})),
        backup=data.get("backup", ""),
        backup_port=data.get("backupPort"),
        type=data.get("type", "http"),
        use_cluster_ip=data.get("use-cluster-ip", False),
        lb_method=data.get("lb-method", ""),
        fail_timeout=data.get("fail-timeout", ""),
        max_fails=data.get("max-fails"),
        max_conns=data.get("max-conns"),
        keepalive=data.get("keepalive"),
        proxy_connect_timeout=data.get("connect-timeout", ""),
        proxy_read_timeout=data.get("read-timeout", ""),
        proxy_send_timeout=data.get("send-timeout", ""),
        proxy_next_upstream=data.get("next-upstream", ""),
        proxy_next_upstream_timeout=data.get("next-upstream-timeout", ""),
        proxy_next_upstream_tries=data.get("next-upstream-tries", 0),
        proxy_buffering=data.get("buffering"),
        proxy_buffers=UpstreamBuffers(number=buffers["number"], size=buffers["size"]) if buffers else None,
        proxy_buffer_size=data.get("buffer-size", ""),
        client_max_body_size=data.get("client-max-body-size", ""),
        tls=UpstreamTLS(enable=data.get("tls", {}).get("enable", False)),
        health_check=_health_check(data.get("healthCheck")),
        slow_start=data.get("slow-start", ""),
        queue=UpstreamQueue(size=queue["size"], timeout=queue.get("timeout", "")) if queue else None,
        session_cookie=(
            SessionCookie(
                enable=cookie.get("enable", False),
                name=cookie.get("name", ""),
                path=cookie.get("path", ""),
                expires=cookie.get("expires", ""),
                domain=cookie.get("domain", ""),
                http_only=cookie.get("httpOnly", False),
                secure=cookie.get("secure", False),
                same_site=cookie.get("samesite", ""),
            )
            if cookie
            else None
        ),
        ntlm=data.get("ntlm", False),
    )


def _metadata(manifest: Dict[str, Any]) -> Dict[str, str]:
    meta = manifest.get("metadata") or {}
    if not meta.get("name"):
        raise ResourceError(f"{manifest.get('kind')} manifest has no metadata.name")
    return {"name": meta["name"], "namespace": meta.get("namespace", "default")}


def load_virtual_server(manifest: Dict[str, Any]) -> VirtualServer:
    """Build a VirtualServer from its manifest."""
    meta = _metadata(manifest)
    spec = manifest.get("spec") or {}

    tls = None
    if "tls" in spec:
        t = spec["tls"] or {}
        redirect = None
        if "redirect" in t:
            r = t["redirect"]
            redirect = TLSRedirect(enable=r.get("enable", False), code=r.get("code"), based_on=r.get("basedOn", ""))
        tls = TLS(secret=t.get("secret", ""), redirect=redirect)

    listener = None
    if "listener" in spec:
        listener = Listener(http=spec["listener"].get("http", ""), https=spec["listener"].get("https", ""))

    return VirtualServer(
        name=meta["name"],
        namespace=meta["namespace"],
        host=spec.get("host", ""),
        tls=tls,
        gunzip=spec.get("gunzip", False),
        internal_route=spec.get("internalRoute", False),
        upstreams=[_upstream(u) for u in spec.get("upstreams", [])],
        routes=[_route(r) for r in spec.get("routes", [])],
        policies=_policy_refs(spec.get("policies")),
        listener=listener,
        http_snippets=spec.get("http-snippets", ""),
        server_snippets=spec.get("server-snippets", ""),
    )


def load_virtual_server_route(manifest: Dict[str, Any]) -> VirtualServerRoute:
    """Build a VirtualServerRoute from its manifest."""
    meta = _metadata(manifest)
    spec = manifest.get("spec") or {}
    return VirtualServerRoute(
        name=meta["name"],
        namespace=meta["namespace"],
        host=spec.get("host", ""),
        upstreams=[_upstream(u) for u in spec.get("upstreams", [])],
        subroutes=[_route(r) for r in spec.get("subroutes", [])],
    )


def _rate_limit(d: Dict[str, Any]) -> RateLimit:
    condition = None
    if "condition" in d:
        c = d["condition"]
        jwt = JWTCondition(claim=c["jwt"]["claim"], match=c["jwt"]["match"]) if "jwt" in c else None
        variables = [VariableCondition(name=v["name"], match=v["match"]) for v in c.get("variables", [])]
        condition = RateLimitCondition(jwt=jwt, variables=variables, default=c.get("default", False))
    return RateLimit(
        rate=d["rate"],
        key=d["key"],
        zone_size=d["zoneSize"],
        delay=d.get("delay"),
        no_delay=d.get("noDelay"),
        burst=d.get("burst"),
        dry_run=d.get("dryRun"),
        log_level=d.get("logLevel", ""),
        reject_code=d.get("rejectCode"),
        scale=d.get("scale", False),
        condition=condition,
    )


def _security_log(d: Dict[str, Any]) -> SecurityLog:
    return SecurityLog(
        enable=d.get("enable", False),
        ap_log_conf=d.get("apLogConf", ""),
        ap_log_bundle=d.get("apLogBundle", ""),
        log_dest=d.get("logDest", ""),
    )


def _waf(d: Dict[str, Any]) -> WAF:
    return WAF(
        enable=d.get("enable", False),
        ap_policy=d.get("apPolicy", ""),
        ap_bundle=d.get("apBundle", ""),
        security_log=_security_log(d["securityLog"]) if "securityLog" in d else None,
        security_logs=[_security_log(s) for s in d.get("securityLogs", [])],
    )


_POLICY_BUILDERS: Dict[PolicyKind, Callable[[Dict[str, Any]], Any]] = {
    PolicyKind.ACCESS_CONTROL: lambda d: AccessControl(allow=list(d.get("allow", [])), deny=list(d.get("deny", []))),
    PolicyKind.RATE_LIMIT: _rate_limit,
    PolicyKind.JWT: lambda d: JWTAuth(
        realm=d.get("realm", ""),
        secret=d.get("secret", ""),
        token=d.get("token", ""),
        jwks_uri=d.get("jwksURI", ""),
        key_cache=d.get("keyCache", ""),
        sni_enabled=d.get("sniEnabled", False),
        sni_name=d.get("sniName", ""),
    ),
    PolicyKind.BASIC_AUTH: lambda d: BasicAuth(secret=d["secret"], realm=d.get("realm", "")),
    PolicyKind.INGRESS_MTLS: lambda d: IngressMTLS(
        client_cert_secret=d["clientCertSecret"],
        crl_file_name=d.get("crlFileName", ""),
        verify_client=d.get("verifyClient", ""),
        verify_depth=d.get("verifyDepth"),
    ),
    PolicyKind.EGRESS_MTLS: lambda d: EgressMTLS(
        tls_secret=d.get("tlsSecret", ""),
        verify_server=d.get("verifyServer", False),
        verify_depth=d.get("verifyDepth"),
        protocols=d.get("protocols", ""),
        session_reuse=d.get("sessionReuse"),
        ciphers=d.get("ciphers", ""),
        trusted_cert_secret=d.get("trustedCertSecret", ""),
        server_name=d.get("serverName", False),
        ssl_name=d.get("sslName", ""),
    ),
    PolicyKind.OIDC: lambda d: OIDC(
        auth_endpoint=d["authEndpoint"],
        token_endpoint=d["tokenEndpoint"],
        jwks_uri=d["jwksURI"],
        client_id=d["clientID"],
        client_secret=d.get("clientSecret", ""),
        end_session_endpoint=d.get("endSessionEndpoint", ""),
        scope=d.get("scope", ""),
        redirect_uri=d.get("redirectURI", ""),
        post_logout_redirect_uri=d.get("postLogoutRedirectURI", ""),
        zone_sync_leeway=d.get("zoneSyncLeeway"),
        auth_extra_args=list(d.get("authExtraArgs", [])),
        access_token_enable=d.get("accessTokenEnable", False),
        pkce_enable=d.get("pkceEnable", False),
    ),
    PolicyKind.API_KEY: lambda d: APIKey(
        client_secret=d["clientSecret"],
        supplied_in=SuppliedIn(
            header=list(d.get("suppliedIn", {}).get("header", [])),
            query=list(d.get("suppliedIn", {}).get("query", [])),
        ),
    ),
    PolicyKind.WAF: _waf,
}


def load_policy(manifest: Dict[str, Any]) -> Policy:
    """Build a Policy from its manifest.

    Raises:
        PolicyKindError: If the policy spec sets no kind or several kinds
    """
    meta = _metadata(manifest)
    spec = manifest.get("spec") or {}
    kinds = [kind for kind in PolicyKind if spec.get(kind.value) is not None]
    if len(kinds) != 1:
        raise PolicyKindError(
            f"Policy {meta['namespace']}/{meta['name']} must set exactly one kind, got {[k.value for k in kinds]}"
        )
    kind = kinds[0]
    try:
        policy_spec = _POLICY_BUILDERS[kind](spec[kind.value])
    except KeyError as e:
        raise ResourceError(f"Policy {meta['namespace']}/{meta['name']} is missing field {e}") from e
    return Policy(name=meta["name"], namespace=meta["namespace"], spec=policy_spec)


_LOADERS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    VirtualServer.KIND: load_virtual_server,
    VirtualServerRoute.KIND: load_virtual_server_route,
    Policy.KIND: load_policy,
}


def load_objects(manifests: List[Dict[str, Any]]) -> LoadedResources:
    """Build resources from manifest dictionaries.

    Raises:
        ResourceError: On an unknown kind or malformed manifest
    """
    loaded = LoadedResources()
    for manifest in manifests:
        if not manifest:
            continue
        kind = manifest.get("kind")
        loader = _LOADERS.get(kind)
        if loader is None:
            raise ResourceError(f"Unknown resource kind: {kind}")
        obj = loader(manifest)
        if isinstance(obj, VirtualServer):
            loaded.virtual_servers.append(obj)
        elif isinstance(obj, VirtualServerRoute):
            loaded.virtual_server_routes.append(obj)
        else:
            loaded.policies.append(obj)

    logger.debug(
        f"Loaded {len(loaded.virtual_servers)} virtual servers, "
        f"{len(loaded.virtual_server_routes)} routes, {len(loaded.policies)} policies"
    )
    return loaded


def load_manifests(text: str) -> LoadedResources:
    """Build resources from a (multi-document) YAML string."""
    return load_objects(list(yaml.safe_load_all(text)))


def load_manifest_file(path: str) -> LoadedResources:
    """Build resources from a YAML file."""
    with open(path, "r") as f:
        return load_manifests(f.read())


__all__ = [
    "LoadedResources",
    "load_manifest_file",
    "load_manifests",
    "load_objects",
    "load_policy",
    "load_virtual_server",
    "load_virtual_server_route",
]
