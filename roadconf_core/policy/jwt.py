"""JWT Policy - Token validation from a key secret or a remote key set.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from typing import Dict

from roadconf_core.document.config import JwksURI, JWTAuth as JWTAuthConfig
from roadconf_core.policy.results import ResolvedPolicyConfig, ValidationResults, check_secret
from roadconf_core.resources.policy import JWTAuth
from roadconf_core.resources.secrets import SecretReference, SecretType, lookup_secret
from roadconf_core.utils.helpers import parse_url


def add_jwt_auth_config(
    cfg: ResolvedPolicyConfig,
    jwt_auth: JWTAuth,
    pol_key: str,
    pol_namespace: str,
    secret_refs: Dict[str, SecretReference],
) -> ValidationResults:
    """Add a JWT policy to the context.

    A second JWT policy in the same context is ignored. Remote key set
    configs are keyed by the policy so they can be collected resource-wide.
    """
    res = ValidationResults()
    if cfg.jwt.auth is not None:
        return res.add_warning(
            f"Multiple jwt policies in the same context is not valid. JWT policy {pol_key} will be ignored"
        )

    if jwt_auth.secret:
        secret_key = f"{pol_namespace}/{jwt_auth.secret}"
        ref = lookup_secret(secret_refs, secret_key)
        if not check_secret(res, "JWT", pol_key, secret_key, ref, SecretType.JWK):
            return res
        cfg.jwt.auth = JWTAuthConfig(secret=ref.path, realm=jwt_auth.realm, token=jwt_auth.token)
    elif jwt_auth.jwks_uri:
        uri = parse_url(jwt_auth.jwks_uri)
        cfg.jwt.auth = JWTAuthConfig(
            key=pol_key,
            jwks_uri=JwksURI(
                jwks_scheme=uri["scheme"],
                jwks_host=uri["host"],
                jwks_port=uri["port"],
                jwks_path=uri["path"],
                jwks_sni_name=jwt_auth.sni_name,
                jwks_sni_enabled=jwt_auth.sni_enabled,
            ),
            realm=jwt_auth.realm,
            token=jwt_auth.token,
            key_cache=jwt_auth.key_cache,
        )
        cfg.jwt.jwks_enabled = True
    return res


__all__ = ["add_jwt_auth_config"]
