"""Policy - Reusable cross-cutting behaviour referenced by routes.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

A Policy carries exactly one kind-specific spec. The spec classes form a
tagged union: each declares its ``KIND`` and resolution dispatches on it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, List, Optional, Union

from roadconf_core.errors import PolicyKindError
from roadconf_core.resources.virtualserver import ResourceRef


class PolicyKind(Enum):
    """Policy kinds, valued by their manifest field name."""

    ACCESS_CONTROL = "accessControl"
    RATE_LIMIT = "rateLimit"
    JWT = "jwt"
    BASIC_AUTH = "basicAuth"
    INGRESS_MTLS = "ingressMTLS"
    EGRESS_MTLS = "egressMTLS"
    OIDC = "oidc"
    API_KEY = "apiKey"
    WAF = "waf"


@dataclass
class AccessControl:
    """Allow or deny client addresses."""

    KIND: ClassVar[PolicyKind] = PolicyKind.ACCESS_CONTROL

    allow: List[str] = field(default_factory=list)
    deny: List[str] = field(default_factory=list)


@dataclass
class JWTCondition:
    """Group requests by the value of a JWT claim."""

    claim: str
    match: str


@dataclass
class VariableCondition:
    """Group requests by the value of a proxy variable."""

    name: str
    match: str


@dataclass
class RateLimitCondition:
    """Grouping condition of a tiered rate limit."""

    jwt: Optional[JWTCondition] = None
    variables: List[VariableCondition] = field(default_factory=list)
    default: bool = False


@dataclass
class RateLimit:
    """Request rate limit."""

    KIND: ClassVar[PolicyKind] = PolicyKind.RATE_LIMIT

    rate: str
    key: str
    zone_size: str
    delay: Optional[int] = None
    no_delay: Optional[bool] = None
    burst: Optional[int] = None
    dry_run: Optional[bool] = None
    log_level: str = ""
    reject_code: Optional[int] = None
    scale: bool = False
    condition: Optional[RateLimitCondition] = None


@dataclass
class JWTAuth:
    """JWT validation against a key secret or a remote key set."""

    KIND: ClassVar[PolicyKind] = PolicyKind.JWT

    realm: str = ""
    secret: str = ""
    token: str = ""
    jwks_uri: str = ""
    key_cache: str = ""
    sni_enabled: bool = False
    sni_name: str = ""


@dataclass
class BasicAuth:
    """HTTP basic authentication."""

    KIND: ClassVar[PolicyKind] = PolicyKind.BASIC_AUTH

    secret: str
    realm: str = ""


@dataclass
class IngressMTLS:
    """Client certificate verification."""

    KIND: ClassVar[PolicyKind] = PolicyKind.INGRESS_MTLS

    client_cert_secret: str
    crl_file_name: str = ""
    verify_client: str = ""
    verify_depth: Optional[int] = None


@dataclass
class EgressMTLS:
    """TLS towards upstreams."""

    KIND: ClassVar[PolicyKind] = PolicyKind.EGRESS_MTLS

    tls_secret: str = ""
    verify_server: bool = False
    verify_depth: Optional[int] = None
    protocols: str = ""
    session_reuse: Optional[bool] = None
    ciphers: str = ""
    trusted_cert_secret: str = ""
    server_name: bool = False
    ssl_name: str = ""


@dataclass
class OIDC:
    """OpenID Connect single sign-on."""

    KIND: ClassVar[PolicyKind] = PolicyKind.OIDC

    auth_endpoint: str
    token_endpoint: str
    jwks_uri: str
    client_id: str
    client_secret: str = ""
    end_session_endpoint: str = ""
    scope: str = ""
    redirect_uri: str = ""
    post_logout_redirect_uri: str = ""
    zone_sync_leeway: Optional[int] = None
    auth_extra_args: List[str] = field(default_factory=list)
    access_token_enable: bool = False
    pkce_enable: bool = False


@dataclass
class SuppliedIn:
    """Where clients present an API key."""

    header: List[str] = field(default_factory=list)
    query: List[str] = field(default_factory=list)


@dataclass
class APIKey:
    """API key authentication."""

    KIND: ClassVar[PolicyKind] = PolicyKind.API_KEY

    client_secret: str
    supplied_in: SuppliedIn = field(default_factory=SuppliedIn)


@dataclass
class SecurityLog:
    """Firewall security log destination."""

    enable: bool = False
    ap_log_conf: str = ""
    ap_log_bundle: str = ""
    log_dest: str = ""


@dataclass
class WAF:
    """Web application firewall."""

    KIND: ClassVar[PolicyKind] = PolicyKind.WAF

    enable: bool = False
    ap_policy: str = ""
    ap_bundle: str = ""
    # Deprecated single-destination form of security_logs.
    security_log: Optional[SecurityLog] = None
    security_logs: List[SecurityLog] = field(default_factory=list)


PolicySpec = Union[
    AccessControl,
    RateLimit,
    JWTAuth,
    BasicAuth,
    IngressMTLS,
    EgressMTLS,
    OIDC,
    APIKey,
    WAF,
]

SPEC_CLASSES = {
    cls.KIND: cls
    for cls in (AccessControl, RateLimit, JWTAuth, BasicAuth, IngressMTLS, EgressMTLS, OIDC, APIKey, WAF)
}


@dataclass
class Policy:
    """Named policy holding one kind-specific spec."""

    KIND: ClassVar[str] = "Policy"

    name: str
    namespace: str
    spec: PolicySpec

    def __post_init__(self) -> None:
        if type(self.spec) not in SPEC_CLASSES.values():
            raise PolicyKindError(f"Policy {self.namespace}/{self.name} has no valid kind")

    @property
    def kind(self) -> PolicyKind:
        return self.spec.KIND

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(self.KIND, self.namespace, self.name)


__all__ = [
    "AccessControl",
    "APIKey",
    "BasicAuth",
    "EgressMTLS",
    "IngressMTLS",
    "JWTAuth",
    "JWTCondition",
    "OIDC",
    "Policy",
    "PolicyKind",
    "PolicySpec",
    "RateLimit",
    "RateLimitCondition",
    "SecurityLog",
    "SPEC_CLASSES",
    "SuppliedIn",
    "VariableCondition",
    "WAF",
]
