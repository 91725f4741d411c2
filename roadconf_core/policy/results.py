"""Policy Results - Per-context resolved policy state.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Union

from roadconf_core.document.config import (
    WAF,
    APIKey,
    APIKeyClient,
    AuthJWTClaimSet,
    BasicAuth,
    EgressMTLS,
    IngressMTLS,
    JWTAuth,
    LimitReq,
    LimitReqOptions,
    LimitReqZone,
    Location,
    Map,
    OIDC,
    Return,
    Server,
)
from roadconf_core.resources.secrets import SecretReference, SecretType
from roadconf_core.resources.virtualserver import ResourceRef

SPEC_CONTEXT = "spec"
ROUTE_CONTEXT = "route"
SUBROUTE_CONTEXT = "subroute"


class ResolutionStatus(Enum):
    """Outcome of resolving one policy context."""

    OK = auto()
    FATAL = auto()


@dataclass
class ValidationResults:
    """Result of applying one policy to a context."""

    is_error: bool = False
    warnings: List[str] = field(default_factory=list)

    def add_warning(self, message: str) -> "ValidationResults":
        self.warnings.append(message)
        return self

    def fail(self, message: str) -> "ValidationResults":
        """Record a warning that makes the whole context fatal."""
        self.is_error = True
        return self.add_warning(message)


@dataclass
class OwnerDetails:
    """Resource that references the policies, and the virtual server it belongs to."""

    owner: ResourceRef
    vs_namespace: str
    vs_name: str

    @property
    def owner_namespace(self) -> str:
        return self.owner.namespace

    @property
    def owner_name(self) -> str:
        return self.owner.name


@dataclass
class PolicyOptions:
    """Context-independent inputs of policy resolution."""

    tls: bool = False
    zone_sync: bool = False
    secret_refs: Dict[str, SecretReference] = field(default_factory=dict)
    waf_policies: Dict[str, str] = field(default_factory=dict)
    waf_log_confs: Dict[str, str] = field(default_factory=dict)


@dataclass
class RateLimitState:
    """Rate-limit directives accumulated in one context."""

    reqs: List[LimitReq] = field(default_factory=list)
    zones: List[LimitReqZone] = field(default_factory=list)
    options: LimitReqOptions = field(default_factory=LimitReqOptions)
    policy_group_maps: List[Map] = field(default_factory=list)
    group_maps: List[Map] = field(default_factory=list)
    auth_jwt_claim_sets: List[AuthJWTClaimSet] = field(default_factory=list)


@dataclass
class JWTState:
    auth: Optional[JWTAuth] = None
    jwks_enabled: bool = False


@dataclass
class APIKeyState:
    key: Optional[APIKey] = None
    clients: List[APIKeyClient] = field(default_factory=list)
    enabled: bool = False


@dataclass
class OIDCState:
    """The single OIDC policy allowed across a virtual server and its routes.

    The first policy applied claims the slot; a different policy later is a
    conflict.
    """

    oidc: Optional[OIDC] = None
    key: str = ""


@dataclass
class ResolvedPolicyConfig:
    """Policies resolved for one context (spec, route or subroute).

    A FATAL config carries nothing but ``error_return``.
    """

    status: ResolutionStatus = ResolutionStatus.OK
    allow: List[str] = field(default_factory=list)
    deny: List[str] = field(default_factory=list)
    rate_limit: RateLimitState = field(default_factory=RateLimitState)
    jwt: JWTState = field(default_factory=JWTState)
    basic_auth: Optional[BasicAuth] = None
    ingress_mtls: Optional[IngressMTLS] = None
    egress_mtls: Optional[EgressMTLS] = None
    oidc: bool = False
    api_key: APIKeyState = field(default_factory=APIKeyState)
    waf: Optional[WAF] = None
    error_return: Optional[Return] = None

    @classmethod
    def fatal(cls) -> "ResolvedPolicyConfig":
        return cls(status=ResolutionStatus.FATAL, error_return=Return(code=500))

    @property
    def is_fatal(self) -> bool:
        return self.status == ResolutionStatus.FATAL

    def apply_to(self, target: Union[Location, Server]) -> None:
        """Copy the location-level policy directives onto a location or server."""
        target.allow = self.allow
        target.deny = self.deny
        target.limit_req_options = self.rate_limit.options
        target.limit_reqs = self.rate_limit.reqs
        target.jwt_auth = self.jwt.auth
        target.basic_auth = self.basic_auth
        target.egress_mtls = self.egress_mtls
        target.waf = self.waf
        target.api_key = self.api_key.key
        target.policies_error_return = self.error_return
        if isinstance(target, Location):
            target.oidc = self.oidc


def check_secret(
    res: ValidationResults,
    label: str,
    pol_key: str,
    secret_key: str,
    ref: SecretReference,
    expected: SecretType,
) -> bool:
    """Validate a secret reference, recording a fatal warning when it is unusable."""
    if ref.type and ref.type != expected.value:
        res.fail(
            f"{label} policy {pol_key} references a secret {secret_key} of a wrong type "
            f"'{ref.type}', must be '{expected.value}'"
        )
        return False
    if ref.error:
        res.fail(f"{label} policy {pol_key} references an invalid secret {secret_key}: {ref.error}")
        return False
    return True


__all__ = [
    "APIKeyState",
    "JWTState",
    "OIDCState",
    "OwnerDetails",
    "PolicyOptions",
    "RateLimitState",
    "ResolutionStatus",
    "ResolvedPolicyConfig",
    "ROUTE_CONTEXT",
    "SPEC_CONTEXT",
    "SUBROUTE_CONTEXT",
    "ValidationResults",
    "check_secret",
]
