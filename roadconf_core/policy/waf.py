"""WAF Policy - Firewall policy, bundles and security logs.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import os
from typing import Dict

from roadconf_core.document.config import WAF as WAFConfig
from roadconf_core.errors import BundleNotFoundError
from roadconf_core.policy.results import ResolvedPolicyConfig, ValidationResults
from roadconf_core.resources.policy import WAF
from roadconf_core.utils.helpers import generate_string

logger = logging.getLogger(__name__)

DEFAULT_LOG_OUTPUT = "syslog:server=localhost:514"


class BundleValidator:
    """Resolves firewall bundle names to files under a bundle directory.

    Usage:
        validator = BundleValidator("/etc/nginx/waf/bundles")
        path = validator.validate("policy.tgz")
    """

    def __init__(self, bundle_path: str):
        self.bundle_path = bundle_path

    def validate(self, bundle: str) -> str:
        """Return the bundle's full path.

        Raises:
            BundleNotFoundError: If the file is not accessible
        """
        path = os.path.join(self.bundle_path, bundle)
        if not os.path.exists(path):
            raise BundleNotFoundError(f"Bundle {path} is not accessible")
        return path


def _namespaced(key: str, namespace: str) -> str:
    return key if "/" in key else f"{namespace}/{key}"


def add_waf_config(
    cfg: ResolvedPolicyConfig,
    waf: WAF,
    pol_key: str,
    pol_namespace: str,
    waf_policies: Dict[str, str],
    waf_log_confs: Dict[str, str],
    validator: BundleValidator,
) -> ValidationResults:
    """Add a firewall policy to the context. A second one is ignored."""
    res = ValidationResults()
    if cfg.waf is not None:
        return res.add_warning(
            f"Multiple WAF policies in the same context is not valid. WAF policy {pol_key} will be ignored"
        )

    config = WAFConfig(enable="on" if waf.enable else "off")
    cfg.waf = config

    if waf.ap_policy:
        ap_pol_key = _namespaced(waf.ap_policy, pol_namespace)
        if ap_pol_key not in waf_policies:
            return res.fail(f"WAF policy {pol_key} references an invalid or non-existing App Protect policy {ap_pol_key}")
        config.ap_policy = waf_policies[ap_pol_key]

    if waf.ap_bundle:
        try:
            config.ap_bundle = validator.validate(waf.ap_bundle)
        except BundleNotFoundError:
            res.fail(f"WAF policy {pol_key} references an invalid or non-existing App Protect bundle {waf.ap_bundle}")

    security_logs = list(waf.security_logs)
    if waf.security_log is not None and not security_logs:
        logger.debug("the field securityLog is deprecated and will be removed in future releases. Use field securityLogs instead")
        security_logs.append(waf.security_log)

    if security_logs:
        config.ap_security_log_enable = True
        for log in security_logs:
            log_dest = generate_string(log.log_dest, DEFAULT_LOG_OUTPUT)

            if log.ap_log_conf:
                log_conf_key = _namespaced(log.ap_log_conf, pol_namespace)
                if log_conf_key in waf_log_confs:
                    config.ap_log_conf.append(f"{waf_log_confs[log_conf_key]} {log_dest}")
                else:
                    res.fail(f"WAF policy {pol_key} references an invalid or non-existing log config {log_conf_key}")

            if log.ap_log_bundle:
                try:
                    bundle = validator.validate(log.ap_log_bundle)
                except BundleNotFoundError:
                    res.fail(
                        f"WAF policy {pol_key} references an invalid or non-existing log config bundle {log.ap_log_bundle}"
                    )
                else:
                    config.ap_log_conf.append(f"{bundle} {log_dest}")
    return res


__all__ = [
    "BundleValidator",
    "DEFAULT_LOG_OUTPUT",
    "add_waf_config",
]
