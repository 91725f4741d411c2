"""Configuration Document - Structured proxy configuration produced by synthesis.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Every class here is a plain dataclass that a renderer turns into the proxy's
native configuration grammar. Collections keep the order in which the
synthesis pass produced them, so serialising the same input twice yields the
same bytes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import yaml


@dataclass
class Header:
    """A header name/value pair."""

    name: str
    value: str


@dataclass
class AddHeader:
    """A response header added by the proxy."""

    name: str
    value: str
    always: bool = False


@dataclass
class Parameter:
    """A single ``value result`` line of a routing map."""

    value: str
    result: str


@dataclass
class Map:
    """Routing map from a source variable to a target variable."""

    source: str
    variable: str
    parameters: List[Parameter] = field(default_factory=list)

    def default_count(self) -> int:
        """Count the ``default`` branches of the map."""
        return sum(1 for p in self.parameters if p.value == "default")


@dataclass
class Distribution:
    """One weighted branch of a split-clients block."""

    weight: str
    value: str


@dataclass
class SplitClient:
    """Weighted distribution keyed by a request-scoped random source."""

    source: str
    variable: str
    distributions: List[Distribution] = field(default_factory=list)


@dataclass
class KeyValZone:
    """Persistent key-value zone declaration."""

    name: str
    size: str
    state: str


@dataclass
class KeyVal:
    """Key-value entry bound to a variable."""

    key: str
    variable: str
    zone_name: str


@dataclass
class TwoWaySplitClients:
    """Runtime-adjustable two-way split backed by a key-value entry."""

    key: str
    variable: str
    zone_name: str
    weights: List[int] = field(default_factory=list)
    split_clients_index: int = 0


@dataclass
class UpstreamLabels:
    """Labels describing which resource owns an upstream."""

    service: str = ""
    resource_type: str = ""
    resource_name: str = ""
    resource_namespace: str = ""


@dataclass
class UpstreamServer:
    """One backend address."""

    address: str


@dataclass
class SessionCookie:
    """Sticky session cookie."""

    enable: bool = True
    name: str = ""
    path: str = ""
    expires: str = ""
    domain: str = ""
    http_only: bool = False
    secure: bool = False
    same_site: str = ""


@dataclass
class Queue:
    """Upstream request queue."""

    size: int
    timeout: str


@dataclass
class Upstream:
    """Upstream block."""

    name: str
    labels: UpstreamLabels = field(default_factory=UpstreamLabels)
    servers: List[UpstreamServer] = field(default_factory=list)
    backup_servers: List[UpstreamServer] = field(default_factory=list)
    resolve: bool = False
    lb_method: str = ""
    keepalive: int = 0
    max_fails: int = 1
    fail_timeout: str = ""
    max_conns: int = 0
    slow_start: str = ""
    upstream_zone_size: str = ""
    queue: Optional[Queue] = None
    session_cookie: Optional[SessionCookie] = None
    ntlm: bool = False


@dataclass
class HealthCheck:
    """Active health check for an upstream."""

    name: str
    uri: str = "/"
    interval: str = "5s"
    jitter: str = "0s"
    keepalive_time: str = "60s"
    fails: int = 1
    passes: int = 1
    port: int = 0
    proxy_pass: str = ""
    proxy_connect_timeout: str = ""
    proxy_read_timeout: str = ""
    proxy_send_timeout: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    match: str = ""
    grpc_pass: str = ""
    grpc_status: Optional[int] = None
    grpc_service: str = ""
    is_grpc: bool = False
    mandatory: bool = False
    persistent: bool = False


@dataclass
class StatusMatch:
    """Expected health-check response status."""

    name: str
    code: str


@dataclass
class LimitReqZone:
    """Rate-limit zone, optionally grouped by a JWT claim or variable."""

    zone_name: str
    key: str
    zone_size: str
    rate: str
    sync: bool = False
    group_value: str = ""
    group_variable: str = ""
    group_source: str = ""
    group_default: bool = False
    policy_value: str = ""
    policy_result: str = ""


@dataclass
class LimitReq:
    """Rate-limit request directive."""

    zone_name: str
    burst: int = 0
    delay: int = 0
    no_delay: bool = False


@dataclass
class LimitReqOptions:
    """Rate-limit options shared by a context."""

    dry_run: bool = False
    log_level: str = "error"
    reject_code: int = 503


@dataclass
class AuthJWTClaimSet:
    """Variable populated from a nested JWT claim."""

    variable: str
    claim: str


@dataclass
class JwksURI:
    """Remote key set location."""

    jwks_scheme: str = ""
    jwks_host: str = ""
    jwks_port: str = ""
    jwks_path: str = ""
    jwks_sni_name: str = ""
    jwks_sni_enabled: bool = False


@dataclass
class JWTAuth:
    """JWT validation settings."""

    key: str = ""
    secret: str = ""
    realm: str = ""
    token: str = ""
    key_cache: str = ""
    jwks_uri: Optional[JwksURI] = None


@dataclass
class BasicAuth:
    """HTTP basic authentication settings."""

    secret: str
    realm: str = ""


@dataclass
class IngressMTLS:
    """Client certificate verification."""

    client_cert: str
    verify_client: str = "on"
    verify_depth: int = 1
    client_crl: str = ""


@dataclass
class EgressMTLS:
    """TLS settings towards upstreams."""

    certificate: str = ""
    certificate_key: str = ""
    ciphers: str = "DEFAULT"
    protocols: str = "TLSv1 TLSv1.1 TLSv1.2"
    verify_server: bool = False
    verify_depth: int = 1
    session_reuse: bool = True
    server_name: bool = False
    trusted_cert: str = ""
    ssl_name: str = "$proxy_host"


@dataclass
class OIDC:
    """OpenID Connect settings, one per virtual server tree."""

    auth_endpoint: str = ""
    auth_extra_args: str = ""
    token_endpoint: str = ""
    jwks_uri: str = ""
    end_session_endpoint: str = ""
    client_id: str = ""
    client_secret: str = ""
    scope: str = "openid"
    redirect_uri: str = "/_codexch"
    post_logout_redirect_uri: str = "/_logout"
    zone_sync_leeway: int = 200
    access_token_enable: bool = False
    pkce_enable: bool = False


@dataclass
class APIKey:
    """API key lookup settings."""

    map_name: str
    header: List[str] = field(default_factory=list)
    query: List[str] = field(default_factory=list)


@dataclass
class APIKeyClient:
    """A client and the SHA-256 digest of its key."""

    client_id: str
    hashed_key: str


@dataclass
class WAF:
    """Web application firewall settings."""

    enable: str = "off"
    ap_policy: str = ""
    ap_bundle: str = ""
    ap_security_log_enable: bool = False
    ap_log_conf: List[str] = field(default_factory=list)


@dataclass
class Return:
    """Literal response."""

    code: int = 0
    text: str = ""


@dataclass
class ErrorPage:
    """``error_page`` directive."""

    name: str
    codes: str
    response_code: int


@dataclass
class ErrorPageLocation:
    """Named location backing a return-type error page."""

    name: str
    default_type: str
    return_: Return = field(default_factory=Return)
    headers: List[Header] = field(default_factory=list)


@dataclass
class ReturnLocation:
    """Named location carrying a literal response for a return action."""

    name: str
    default_type: str
    return_: Return = field(default_factory=Return)
    headers: List[Header] = field(default_factory=list)


@dataclass
class InternalRedirectLocation:
    """Location that rewrites the request into a computed internal destination."""

    path: str
    destination: str


@dataclass
class Location:
    """Location block.

    The policy fields at the bottom are filled from the route's resolved
    policy configuration after the location is generated.
    """

    path: str
    internal: bool = False
    snippets: List[str] = field(default_factory=list)
    proxy_connect_timeout: str = ""
    proxy_read_timeout: str = ""
    proxy_send_timeout: str = ""
    client_max_body_size: str = ""
    proxy_max_temp_file_size: str = ""
    proxy_buffering: bool = False
    proxy_buffers: str = ""
    proxy_buffer_size: str = ""
    proxy_pass: str = ""
    proxy_next_upstream: str = ""
    proxy_next_upstream_timeout: str = ""
    proxy_next_upstream_tries: int = 0
    proxy_intercept_errors: bool = False
    proxy_pass_request_headers: bool = True
    proxy_set_headers: List[Header] = field(default_factory=list)
    proxy_hide_headers: List[str] = field(default_factory=list)
    proxy_pass_headers: List[str] = field(default_factory=list)
    proxy_ignore_headers: str = ""
    add_headers: List[AddHeader] = field(default_factory=list)
    rewrites: List[str] = field(default_factory=list)
    proxy_pass_rewrite: str = ""
    has_keepalive: bool = False
    error_pages: List[ErrorPage] = field(default_factory=list)
    proxy_ssl_name: str = ""
    service_name: str = ""
    is_vsr: bool = False
    vsr_name: str = ""
    vsr_namespace: str = ""
    grpc_pass: str = ""
    internal_proxy_pass: str = ""

    # Policies
    allow: List[str] = field(default_factory=list)
    deny: List[str] = field(default_factory=list)
    limit_req_options: LimitReqOptions = field(default_factory=LimitReqOptions)
    limit_reqs: List[LimitReq] = field(default_factory=list)
    jwt_auth: Optional[JWTAuth] = None
    basic_auth: Optional[BasicAuth] = None
    egress_mtls: Optional[EgressMTLS] = None
    oidc: bool = False
    waf: Optional[WAF] = None
    api_key: Optional[APIKey] = None
    policies_error_return: Optional[Return] = None


@dataclass
class SSL:
    """TLS termination settings."""

    http2: bool = False
    certificate: str = ""
    certificate_key: str = ""
    reject_handshake: bool = False


@dataclass
class TLSRedirect:
    """Plain-HTTP to HTTPS redirect."""

    code: int = 301
    based_on: str = "$scheme"


@dataclass
class Server:
    """Server block of a virtual server."""

    server_name: str
    status_zone: str = ""
    gunzip: bool = False
    http_port: int = 0
    https_port: int = 0
    http_ipv4: str = ""
    http_ipv6: str = ""
    https_ipv4: str = ""
    https_ipv6: str = ""
    custom_listeners: bool = False
    proxy_protocol: bool = False
    ssl: Optional[SSL] = None
    server_tokens: str = ""
    set_real_ip_from: List[str] = field(default_factory=list)
    real_ip_header: str = ""
    real_ip_recursive: bool = False
    snippets: List[str] = field(default_factory=list)
    internal_redirect_locations: List[InternalRedirectLocation] = field(default_factory=list)
    locations: List[Location] = field(default_factory=list)
    return_locations: List[ReturnLocation] = field(default_factory=list)
    health_checks: List[HealthCheck] = field(default_factory=list)
    tls_redirect: Optional[TLSRedirect] = None
    error_page_locations: List[ErrorPageLocation] = field(default_factory=list)
    tls_passthrough: bool = False
    disable_ipv6: bool = False
    vs_namespace: str = ""
    vs_name: str = ""

    # Policies
    allow: List[str] = field(default_factory=list)
    deny: List[str] = field(default_factory=list)
    limit_req_options: LimitReqOptions = field(default_factory=LimitReqOptions)
    limit_reqs: List[LimitReq] = field(default_factory=list)
    jwt_auth: Optional[JWTAuth] = None
    jwt_auth_list: Dict[str, JWTAuth] = field(default_factory=dict)
    jwks_auth_enabled: bool = False
    basic_auth: Optional[BasicAuth] = None
    ingress_mtls: Optional[IngressMTLS] = None
    egress_mtls: Optional[EgressMTLS] = None
    oidc: Optional[OIDC] = None
    waf: Optional[WAF] = None
    api_key: Optional[APIKey] = None
    api_key_enabled: bool = False
    policies_error_return: Optional[Return] = None


@dataclass
class VirtualServerConfig:
    """Complete configuration for one virtual server and its delegated routes."""

    server: Server
    upstreams: List[Upstream] = field(default_factory=list)
    split_clients: List[SplitClient] = field(default_factory=list)
    maps: List[Map] = field(default_factory=list)
    status_matches: List[StatusMatch] = field(default_factory=list)
    limit_req_zones: List[LimitReqZone] = field(default_factory=list)
    auth_jwt_claim_sets: List[AuthJWTClaimSet] = field(default_factory=list)
    http_snippets: List[str] = field(default_factory=list)
    key_val_zones: List[KeyValZone] = field(default_factory=list)
    key_vals: List[KeyVal] = field(default_factory=list)
    two_way_split_clients: List[TwoWaySplitClients] = field(default_factory=list)
    spiffe_certs: bool = False
    spiffe_client_certs: bool = False
    dynamic_ssl_reload_enabled: bool = False
    static_ssl_path: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary in field order."""
        return asdict(self)

    def to_yaml(self) -> str:
        """Serialize to YAML, preserving field and collection order."""
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)


__all__ = [
    "AddHeader",
    "APIKey",
    "APIKeyClient",
    "AuthJWTClaimSet",
    "BasicAuth",
    "Distribution",
    "EgressMTLS",
    "ErrorPage",
    "ErrorPageLocation",
    "Header",
    "HealthCheck",
    "IngressMTLS",
    "InternalRedirectLocation",
    "JwksURI",
    "JWTAuth",
    "KeyVal",
    "KeyValZone",
    "LimitReq",
    "LimitReqOptions",
    "LimitReqZone",
    "Location",
    "Map",
    "OIDC",
    "Parameter",
    "Queue",
    "Return",
    "ReturnLocation",
    "Server",
    "SessionCookie",
    "SplitClient",
    "SSL",
    "StatusMatch",
    "TLSRedirect",
    "TwoWaySplitClients",
    "Upstream",
    "UpstreamLabels",
    "UpstreamServer",
    "VirtualServerConfig",
    "WAF",
]
