"""Mutual TLS Policies - Client verification and upstream TLS.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import Dict

from roadconf_core.document.config import EgressMTLS as EgressMTLSConfig
from roadconf_core.document.config import IngressMTLS as IngressMTLSConfig
from roadconf_core.policy.results import SPEC_CONTEXT, ResolvedPolicyConfig, ValidationResults, check_secret
from roadconf_core.resources.policy import EgressMTLS, IngressMTLS
from roadconf_core.resources.secrets import CA_CRL_KEY, SecretReference, SecretType, lookup_secret
from roadconf_core.utils.helpers import generate_bool, generate_int, generate_string

DEFAULT_SECRET_PATH = "/etc/nginx/secrets"


def add_ingress_mtls_config(
    cfg: ResolvedPolicyConfig,
    ingress_mtls: IngressMTLS,
    pol_key: str,
    pol_namespace: str,
    context: str,
    tls: bool,
    secret_refs: Dict[str, SecretReference],
) -> ValidationResults:
    """Add client certificate verification to the context.

    Only valid on a TLS-terminating virtual server's spec. A CA secret's path
    holds the certificate file and, when the secret carries ``ca.crl``, the
    revocation list file, separated by a space. An explicit ``crlFileName``
    takes precedence over ``ca.crl``.
    """
    res = ValidationResults()
    if not tls:
        return res.fail(f"TLS must be enabled in VirtualServer for IngressMTLS policy {pol_key}")
    if context != SPEC_CONTEXT:
        return res.fail(f"IngressMTLS policy {pol_key} is not allowed in the {context} context")
    if cfg.ingress_mtls is not None:
        return res.add_warning(
            f"Multiple ingressMTLS policies are not allowed. IngressMTLS policy {pol_key} will be ignored"
        )

    secret_key = f"{pol_namespace}/{ingress_mtls.client_cert_secret}"
    ref = lookup_secret(secret_refs, secret_key)
    if not check_secret(res, "IngressMTLS", pol_key, secret_key, ref, SecretType.CA):
        return res

    ca_fields = ref.path.split()
    has_crl_key = CA_CRL_KEY in ref.data
    if has_crl_key and ingress_mtls.crl_file_name:
        res.add_warning(
            f"Both ca.crl in the Secret and ingressMTLS.crlFileName fields cannot be used. "
            f"ca.crl in {secret_key} will be ignored and {pol_key} will be applied"
        )

    client_crl = ""
    if ingress_mtls.crl_file_name:
        client_crl = f"{DEFAULT_SECRET_PATH}/{ingress_mtls.crl_file_name}"
    elif has_crl_key and len(ca_fields) > 1:
        client_crl = ca_fields[1]

    cfg.ingress_mtls = IngressMTLSConfig(
        client_cert=ca_fields[0] if ca_fields else "",
        verify_client=generate_string(ingress_mtls.verify_client, "on"),
        verify_depth=generate_int(ingress_mtls.verify_depth, 1),
        client_crl=client_crl,
    )
    return res


def add_egress_mtls_config(
    cfg: ResolvedPolicyConfig,
    egress_mtls: EgressMTLS,
    pol_key: str,
    pol_namespace: str,
    secret_refs: Dict[str, SecretReference],
) -> ValidationResults:
    """Add upstream TLS settings to the context.

    The client certificate and trusted CA secrets are both optional and
    checked independently.
    """
    res = ValidationResults()
    if cfg.egress_mtls is not None:
        return res.add_warning(
            f"Multiple egressMTLS policies in the same context is not valid. EgressMTLS policy {pol_key} will be ignored"
        )

    tls_secret_path = ""
    if egress_mtls.tls_secret:
        secret_key = f"{pol_namespace}/{egress_mtls.tls_secret}"
        ref = lookup_secret(secret_refs, secret_key)
        if not check_secret(res, "EgressMTLS", pol_key, secret_key, ref, SecretType.TLS):
            return res
        tls_secret_path = ref.path

    trusted_secret_path = ""
    if egress_mtls.trusted_cert_secret:
        secret_key = f"{pol_namespace}/{egress_mtls.trusted_cert_secret}"
        ref = lookup_secret(secret_refs, secret_key)
        if not check_secret(res, "EgressMTLS", pol_key, secret_key, ref, SecretType.CA):
            return res
        ca_fields = ref.path.split()
        trusted_secret_path = ca_fields[0] if ca_fields else ""

    cfg.egress_mtls = EgressMTLSConfig(
        certificate=tls_secret_path,
        certificate_key=tls_secret_path,
        ciphers=generate_string(egress_mtls.ciphers, "DEFAULT"),
        protocols=generate_string(egress_mtls.protocols, "TLSv1 TLSv1.1 TLSv1.2"),
        verify_server=egress_mtls.verify_server,
        verify_depth=generate_int(egress_mtls.verify_depth, 1),
        session_reuse=generate_bool(egress_mtls.session_reuse, True),
        server_name=egress_mtls.server_name,
        trusted_cert=trusted_secret_path,
        ssl_name=generate_string(egress_mtls.ssl_name, "$proxy_host"),
    )
    return res


__all__ = [
    "DEFAULT_SECRET_PATH",
    "add_egress_mtls_config",
    "add_ingress_mtls_config",
]
