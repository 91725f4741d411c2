"""Access Control Policy - Client address allow and deny lists.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from roadconf_core.policy.results import ResolvedPolicyConfig, ValidationResults
from roadconf_core.resources.policy import AccessControl


def add_access_control_config(cfg: ResolvedPolicyConfig, access_control: AccessControl) -> ValidationResults:
    """Merge allow and deny lists into the context.

    Allow rules dominate: once any allow rule is present the proxy denies
    everything else, so deny rules only matter without allow rules.
    """
    res = ValidationResults()
    cfg.allow.extend(access_control.allow)
    cfg.deny.extend(access_control.deny)
    if cfg.allow and cfg.deny:
        res.add_warning(
            "AccessControl policy (or policies) with deny rules is overridden by policy (or policies) with allow rules"
        )
    return res


__all__ = ["add_access_control_config"]
