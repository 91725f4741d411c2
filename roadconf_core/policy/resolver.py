"""Policy Resolver - Resolve policy references for one context.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from roadconf_core.diagnostics import Warnings
from roadconf_core.policy.access import add_access_control_config
from roadconf_core.policy.auth import add_api_key_config, add_basic_auth_config
from roadconf_core.policy.jwt import add_jwt_auth_config
from roadconf_core.policy.mtls import add_egress_mtls_config, add_ingress_mtls_config
from roadconf_core.policy.oidc import add_oidc_config
from roadconf_core.policy.ratelimit import add_rate_limit_config, group_maps, has_duplicate_map_defaults
from roadconf_core.policy.results import (
    OIDCState,
    OwnerDetails,
    PolicyOptions,
    ResolvedPolicyConfig,
    ValidationResults,
)
from roadconf_core.policy.waf import BundleValidator, add_waf_config
from roadconf_core.resources.policy import Policy, PolicyKind
from roadconf_core.resources.virtualserver import PolicyReference

logger = logging.getLogger(__name__)


class PolicyResolver:
    """Resolves ordered policy references into a ResolvedPolicyConfig.

    Pipeline:
    ┌──────────────┐   ┌──────────────┐   ┌─────────────────┐   ┌────────────┐
    │  Reference   │──▶│   Catalog    │──▶│  Kind handler   │──▶│ Group maps │
    │  ns/name     │   │   lookup     │   │ (by PolicyKind) │   │   check    │
    └──────────────┘   └──────┬───────┘   └────────┬────────┘   └─────┬──────┘
                              │ missing            │ is_error         │ duplicate default
                              ▼                    ▼                  ▼
                        ┌─────────────────────────────────────────────────┐
                        │          FATAL: return 500, one warning          │
                        └─────────────────────────────────────────────────┘

    One resolver serves one synthesis pass: it carries the OIDC slot shared
    by the virtual server and its routes, and the pass's warnings.

    Usage:
        resolver = PolicyResolver(warnings, bundle_validator, replicas=2)
        cfg = resolver.resolve(owner, vs.policies, catalog, "spec", "", options)
        if cfg.is_fatal:
            ...
    """

    def __init__(
        self,
        warnings: Warnings,
        bundle_validator: BundleValidator,
        replicas: int = 1,
        oidc_state: Optional[OIDCState] = None,
    ):
        self.warnings = warnings
        self.bundle_validator = bundle_validator
        self.replicas = replicas
        self.oidc_state = oidc_state or OIDCState()

    def resolve(
        self,
        owner: OwnerDetails,
        refs: List[PolicyReference],
        policies: Dict[str, Policy],
        context: str,
        path: str,
        options: PolicyOptions,
    ) -> ResolvedPolicyConfig:
        """Resolve ``refs`` in order for a spec, route or subroute context."""
        cfg = ResolvedPolicyConfig()

        for ref in refs:
            pol_namespace = ref.namespace or owner.owner_namespace
            key = f"{pol_namespace}/{ref.name}"

            policy = policies.get(key)
            if policy is None:
                self.warnings.add(owner.owner, f"Policy {key} is missing or invalid")
                return ResolvedPolicyConfig.fatal()

            res = self._apply(cfg, policy, key, pol_namespace, owner, context, path, options)
            self.warnings.extend(owner.owner, res.warnings)
            if res.is_error:
                logger.debug(f"Policy {key} made the {context} context of {owner.owner} fatal")
                return ResolvedPolicyConfig.fatal()

        if cfg.rate_limit.policy_group_maps:
            for m in group_maps(cfg.rate_limit.zones):
                if has_duplicate_map_defaults(m):
                    self.warnings.add(
                        owner.owner,
                        f"Tiered rate-limit Policies on [{owner.owner_namespace}/{owner.owner_name}] "
                        f"contain conflicting default values",
                    )
                    return ResolvedPolicyConfig.fatal()
                cfg.rate_limit.group_maps.append(m)

        return cfg

    def _apply(
        self,
        cfg: ResolvedPolicyConfig,
        policy: Policy,
        key: str,
        pol_namespace: str,
        owner: OwnerDetails,
        context: str,
        path: str,
        options: PolicyOptions,
    ) -> ValidationResults:
        spec = policy.spec
        handlers: Dict[PolicyKind, Callable[[], ValidationResults]] = {
            PolicyKind.ACCESS_CONTROL: lambda: add_access_control_config(cfg, spec),
            PolicyKind.RATE_LIMIT: lambda: add_rate_limit_config(
                cfg, policy, owner, self.replicas, options.zone_sync, context, path
            ),
            PolicyKind.JWT: lambda: add_jwt_auth_config(cfg, spec, key, pol_namespace, options.secret_refs),
            PolicyKind.BASIC_AUTH: lambda: add_basic_auth_config(cfg, spec, key, pol_namespace, options.secret_refs),
            PolicyKind.INGRESS_MTLS: lambda: add_ingress_mtls_config(
                cfg, spec, key, pol_namespace, context, options.tls, options.secret_refs
            ),
            PolicyKind.EGRESS_MTLS: lambda: add_egress_mtls_config(cfg, spec, key, pol_namespace, options.secret_refs),
            PolicyKind.OIDC: lambda: add_oidc_config(
                cfg, spec, key, pol_namespace, options.secret_refs, self.oidc_state
            ),
            PolicyKind.API_KEY: lambda: add_api_key_config(
                cfg, spec, key, pol_namespace, owner.vs_namespace, owner.vs_name, options.secret_refs
            ),
            PolicyKind.WAF: lambda: add_waf_config(
                cfg,
                spec,
                key,
                pol_namespace,
                options.waf_policies,
                options.waf_log_confs,
                self.bundle_validator,
            ),
        }
        return handlers[policy.kind]()


__all__ = ["PolicyResolver"]
