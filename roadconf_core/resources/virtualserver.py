"""Virtual Server - Routing resources consumed by synthesis.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

A VirtualServer is the primary resource selected by a request's host. It may
delegate path prefixes to VirtualServerRoute resources, whose subroutes share
the structure of a route.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Optional

from roadconf_core.errors import ResourceError


class ActionKind(Enum):
    """What a route action does."""

    PASS = "pass"
    REDIRECT = "redirect"
    RETURN = "return"
    PROXY = "proxy"


@dataclass(frozen=True)
class ResourceRef:
    """Identity of a resource, used to attach warnings."""

    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind} {self.namespace}/{self.name}"


@dataclass
class Header:
    """Header name and value."""

    name: str
    value: str = ""


@dataclass
class AddHeader:
    """Response header to add."""

    name: str
    value: str = ""
    always: bool = False


@dataclass
class ProxyRequestHeaders:
    """Request header handling for a proxy action."""

    pass_: Optional[bool] = None
    set: List[Header] = field(default_factory=list)


@dataclass
class ProxyResponseHeaders:
    """Response header handling for a proxy action."""

    hide: List[str] = field(default_factory=list)
    pass_: List[str] = field(default_factory=list)
    ignore: List[str] = field(default_factory=list)
    add: List[AddHeader] = field(default_factory=list)


@dataclass
class ActionProxy:
    """Proxy to an upstream with header and path rewriting."""

    upstream: str
    request_headers: Optional[ProxyRequestHeaders] = None
    response_headers: Optional[ProxyResponseHeaders] = None
    rewrite_path: str = ""


@dataclass
class ActionRedirect:
    """Redirect to a URL."""

    url: str
    code: int = 0


@dataclass
class ActionReturn:
    """Literal response."""

    code: int = 0
    type: str = ""
    body: str = ""
    headers: List[Header] = field(default_factory=list)


@dataclass
class Action:
    """Route action. Exactly one field is set."""

    pass_: str = ""
    redirect: Optional[ActionRedirect] = None
    return_: Optional[ActionReturn] = None
    proxy: Optional[ActionProxy] = None

    @property
    def kind(self) -> ActionKind:
        if self.redirect is not None:
            return ActionKind.REDIRECT
        if self.return_ is not None:
            return ActionKind.RETURN
        if self.proxy is not None:
            return ActionKind.PROXY
        return ActionKind.PASS

    @property
    def upstream(self) -> str:
        """Name of the upstream this action sends traffic to, if any."""
        if self.proxy is not None:
            return self.proxy.upstream
        return self.pass_


@dataclass
class Split:
    """Weighted branch."""

    weight: int
    action: Action


@dataclass
class Condition:
    """Request attribute tested by a match. One source is set."""

    value: str
    header: str = ""
    cookie: str = ""
    argument: str = ""
    variable: str = ""


@dataclass
class Match:
    """Conditional branch with an action or nested splits."""

    conditions: List[Condition] = field(default_factory=list)
    action: Optional[Action] = None
    splits: List[Split] = field(default_factory=list)


@dataclass
class ErrorPageReturn:
    """Literal response for an error page."""

    body: str
    code: int = 0
    type: str = ""
    headers: List[Header] = field(default_factory=list)


@dataclass
class ErrorPageRedirect:
    """Redirect for an error page."""

    url: str
    code: int = 0


@dataclass
class ErrorPage:
    """Custom response for a set of upstream status codes."""

    codes: List[int] = field(default_factory=list)
    return_: Optional[ErrorPageReturn] = None
    redirect: Optional[ErrorPageRedirect] = None


@dataclass
class PolicyReference:
    """Reference to a policy, namespace defaulting to the owner's."""

    name: str
    namespace: str = ""


@dataclass
class Route:
    """Path-scoped routing rule.

    Exactly one of ``action``, ``splits`` or ``route`` is set; ``matches``
    puts conditional branches in front of the action or splits.
    ``route`` names a VirtualServerRoute (``ns/name`` or ``name``) that
    serves this path. Subroutes of a VirtualServerRoute use the same class.
    """

    path: str
    action: Optional[Action] = None
    splits: List[Split] = field(default_factory=list)
    matches: List[Match] = field(default_factory=list)
    route: str = ""
    policies: List[PolicyReference] = field(default_factory=list)
    error_pages: List[ErrorPage] = field(default_factory=list)
    location_snippets: str = ""

    def validate(self) -> None:
        """Raise ResourceError unless the route has a single routing form.

        Matches fall back to either an action or splits, so a route with
        matches also carries exactly one of those.
        """
        if self.route:
            if self.action is not None or self.splits or self.matches:
                raise ResourceError(f"Route {self.path} delegates and must not set action, splits or matches")
            return
        defaults = (self.action is not None) + bool(self.splits)
        if defaults != 1:
            raise ResourceError(f"Route {self.path} must set exactly one of action, splits, route")
        for i, match in enumerate(self.matches):
            if not match.conditions or (match.action is not None) + bool(match.splits) != 1:
                raise ResourceError(f"Match {i} of route {self.path} needs conditions and one of action, splits")


@dataclass
class UpstreamTLS:
    """TLS towards an upstream."""

    enable: bool = False


@dataclass
class HealthCheck:
    """Active health check settings."""

    enable: bool = False
    path: str = ""
    interval: str = ""
    jitter: str = ""
    keepalive_time: str = ""
    fails: int = 0
    passes: int = 0
    port: int = 0
    tls: Optional[UpstreamTLS] = None
    connect_timeout: str = ""
    read_timeout: str = ""
    send_timeout: str = ""
    headers: List[Header] = field(default_factory=list)
    status_match: str = ""
    grpc_status: Optional[int] = None
    grpc_service: str = ""
    mandatory: bool = False
    persistent: bool = False


@dataclass
class SessionCookie:
    """Sticky session cookie settings."""

    enable: bool = False
    name: str = ""
    path: str = ""
    expires: str = ""
    domain: str = ""
    http_only: bool = False
    secure: bool = False
    same_site: str = ""


@dataclass
class UpstreamQueue:
    """Request queue settings."""

    size: int
    timeout: str = ""


@dataclass
class UpstreamBuffers:
    """Proxy buffer count and size."""

    number: int
    size: str


@dataclass
class Upstream:
    """Named group of backends behind a service.

    Endpoints are looked up by ``(namespace, service, subselector, port)``.
    """

    name: str
    service: str
    port: int
    subselector: Dict[str, str] = field(default_factory=dict)
    backup: str = ""
    backup_port: Optional[int] = None
    type: str = "http"
    use_cluster_ip: bool = False
    lb_method: str = ""
    fail_timeout: str = ""
    max_fails: Optional[int] = None
    max_conns: Optional[int] = None
    keepalive: Optional[int] = None
    proxy_connect_timeout: str = ""
    proxy_read_timeout: str = ""
    proxy_send_timeout: str = ""
    proxy_next_upstream: str = ""
    proxy_next_upstream_timeout: str = ""
    proxy_next_upstream_tries: int = 0
    proxy_buffering: Optional[bool] = None
    proxy_buffers: Optional[UpstreamBuffers] = None
    proxy_buffer_size: str = ""
    client_max_body_size: str = ""
    tls: UpstreamTLS = field(default_factory=UpstreamTLS)
    health_check: Optional[HealthCheck] = None
    slow_start: str = ""
    queue: Optional[UpstreamQueue] = None
    session_cookie: Optional[SessionCookie] = None
    ntlm: bool = False

    @property
    def is_grpc(self) -> bool:
        return self.type == "grpc"


@dataclass
class TLSRedirect:
    """Redirect plain HTTP traffic to HTTPS."""

    enable: bool = False
    code: Optional[int] = None
    based_on: str = ""


@dataclass
class TLS:
    """TLS termination settings."""

    secret: str = ""
    redirect: Optional[TLSRedirect] = None


@dataclass
class Listener:
    """Names of custom listeners."""

    http: str = ""
    https: str = ""


@dataclass
class VirtualServer:
    """Primary routing resource."""

    KIND: ClassVar[str] = "VirtualServer"

    name: str
    namespace: str
    host: str
    tls: Optional[TLS] = None
    gunzip: bool = False
    internal_route: bool = False
    upstreams: List[Upstream] = field(default_factory=list)
    routes: List[Route] = field(default_factory=list)
    policies: List[PolicyReference] = field(default_factory=list)
    listener: Optional[Listener] = None
    http_snippets: str = ""
    server_snippets: str = ""

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(self.KIND, self.namespace, self.name)


@dataclass
class VirtualServerRoute:
    """Delegated routing resource."""

    KIND: ClassVar[str] = "VirtualServerRoute"

    name: str
    namespace: str
    host: str = ""
    upstreams: List[Upstream] = field(default_factory=list)
    subroutes: List[Route] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(self.KIND, self.namespace, self.name)


__all__ = [
    "Action",
    "ActionKind",
    "ActionProxy",
    "ActionRedirect",
    "ActionReturn",
    "AddHeader",
    "Condition",
    "ErrorPage",
    "ErrorPageRedirect",
    "ErrorPageReturn",
    "Header",
    "HealthCheck",
    "Listener",
    "Match",
    "PolicyReference",
    "ProxyRequestHeaders",
    "ProxyResponseHeaders",
    "ResourceRef",
    "Route",
    "SessionCookie",
    "Split",
    "TLS",
    "TLSRedirect",
    "Upstream",
    "UpstreamBuffers",
    "UpstreamQueue",
    "UpstreamTLS",
    "VirtualServer",
    "VirtualServerRoute",
]
