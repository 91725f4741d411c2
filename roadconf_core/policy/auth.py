"""Authentication Policies - Basic auth and API keys.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

API keys never appear in clear text in the generated configuration: each
key is replaced by its SHA-256 hex digest, and the proxy hashes the key a
client presents before looking it up.
"""

from __future__ import annotations

import hashlib
from typing import Dict, List

from roadconf_core.document.config import APIKey as APIKeyConfig
from roadconf_core.document.config import APIKeyClient, BasicAuth as BasicAuthConfig, Map, Parameter
from roadconf_core.policy.results import ResolvedPolicyConfig, ValidationResults, check_secret
from roadconf_core.resources.policy import APIKey, BasicAuth
from roadconf_core.resources.secrets import SecretReference, SecretType, lookup_secret
from roadconf_core.utils.helpers import rfc1123_to_snake

API_KEY_TOKEN_VARIABLE = "$apikey_auth_token"


def add_basic_auth_config(
    cfg: ResolvedPolicyConfig,
    basic_auth: BasicAuth,
    pol_key: str,
    pol_namespace: str,
    secret_refs: Dict[str, SecretReference],
) -> ValidationResults:
    res = ValidationResults()
    if cfg.basic_auth is not None:
        return res.add_warning(
            f"Multiple basic auth policies in the same context is not valid. Basic auth policy {pol_key} will be ignored"
        )

    secret_key = f"{pol_namespace}/{basic_auth.secret}"
    ref = lookup_secret(secret_refs, secret_key)
    if not check_secret(res, "Basic Auth", pol_key, secret_key, ref, SecretType.HTPASSWD):
        return res

    cfg.basic_auth = BasicAuthConfig(secret=ref.path, realm=basic_auth.realm)
    return res


def hash_api_key(key: bytes) -> str:
    """One-way hash of an API key."""
    return hashlib.sha256(key).hexdigest()


def generate_api_key_clients(data: Dict[str, bytes]) -> List[APIKeyClient]:
    """Clients of an API key secret, ordered by client id."""
    return [APIKeyClient(client_id=client_id, hashed_key=hash_api_key(data[client_id])) for client_id in sorted(data)]


def api_key_map_name(vs_namespace: str, vs_name: str, pol_name: str) -> str:
    return (
        f"apikey_auth_client_name_{rfc1123_to_snake(vs_namespace)}_"
        f"{rfc1123_to_snake(vs_name)}_{rfc1123_to_snake(pol_name)}"
    )


def generate_api_key_client_map(map_name: str, clients: List[APIKeyClient]) -> Map:
    """Map from the hashed presented key to the client id."""
    params = [Parameter(value="default", result='""')]
    params.extend(Parameter(value=f'"{c.hashed_key}"', result=f'"{c.client_id}"') for c in clients)
    return Map(source=API_KEY_TOKEN_VARIABLE, variable=f"${map_name}", parameters=params)


def add_api_key_config(
    cfg: ResolvedPolicyConfig,
    api_key: APIKey,
    pol_key: str,
    pol_namespace: str,
    vs_namespace: str,
    vs_name: str,
    secret_refs: Dict[str, SecretReference],
) -> ValidationResults:
    """Add an API key policy to the context.

    Unlike other single-instance kinds, a second API key policy in one
    context makes the context fatal.
    """
    res = ValidationResults()
    if cfg.api_key.key is not None:
        return res.fail(
            f"Multiple API Key policies in the same context is not valid. API Key policy {pol_key} will be ignored"
        )

    secret_key = f"{pol_namespace}/{api_key.client_secret}"
    ref = lookup_secret(secret_refs, secret_key)
    if not check_secret(res, "API Key", pol_key, secret_key, ref, SecretType.API_KEY):
        return res

    cfg.api_key.clients = generate_api_key_clients(ref.data)
    cfg.api_key.key = APIKeyConfig(
        map_name=api_key_map_name(vs_namespace, vs_name, pol_key.split("/")[1]),
        header=list(api_key.supplied_in.header),
        query=list(api_key.supplied_in.query),
    )
    cfg.api_key.enabled = True
    return res


__all__ = [
    "API_KEY_TOKEN_VARIABLE",
    "add_api_key_config",
    "add_basic_auth_config",
    "api_key_map_name",
    "generate_api_key_client_map",
    "generate_api_key_clients",
    "hash_api_key",
]
