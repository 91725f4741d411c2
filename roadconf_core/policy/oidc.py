"""OIDC Policy - Single sign-on shared by a virtual server and its routes.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
from typing import Dict

from roadconf_core.document.config import OIDC as OIDCConfig
from roadconf_core.policy.results import OIDCState, ResolvedPolicyConfig, ValidationResults
from roadconf_core.resources.policy import OIDC
from roadconf_core.resources.secrets import CLIENT_SECRET_KEY, SecretReference, SecretType
from roadconf_core.utils.helpers import generate_int, generate_string

logger = logging.getLogger(__name__)


def add_oidc_config(
    cfg: ResolvedPolicyConfig,
    oidc: OIDC,
    pol_key: str,
    pol_namespace: str,
    secret_refs: Dict[str, SecretReference],
    state: OIDCState,
) -> ValidationResults:
    """Add an OIDC policy to the context.

    The first OIDC policy seen in a pass fills ``state``; the same policy
    may then be referenced from any context, but a different one is fatal.
    With PKCE the client secret must be absent, without PKCE it is required.
    """
    res = ValidationResults()
    if cfg.oidc:
        return res.add_warning(
            f"Multiple oidc policies in the same context is not valid. OIDC policy {pol_key} will be ignored"
        )

    if state.oidc is not None:
        if state.key != pol_key:
            return res.fail(
                f"Only one oidc policy is allowed in a VirtualServer and its VirtualServerRoutes. "
                f"Can't use {pol_key}. Use {state.key}"
            )
    else:
        secret_key = f"{pol_namespace}/{oidc.client_secret}"
        client_secret = ""
        ref = secret_refs.get(secret_key)
        if ref is not None:
            if ref.type and ref.type != SecretType.OIDC.value:
                return res.fail(
                    f"OIDC policy {pol_key} references a secret {secret_key} of a wrong type "
                    f"'{ref.type}', must be '{SecretType.OIDC.value}'"
                )
            if ref.error and not oidc.pkce_enable:
                return res.fail(f"OIDC policy {pol_key} references an invalid secret {secret_key}: {ref.error}")
            if oidc.pkce_enable:
                return res.fail(f"OIDC policy {pol_key} has a secret and PKCE enabled. Secrets can't be used with PKCE")
            try:
                client_secret = ref.data.get(CLIENT_SECRET_KEY, b"").decode()
            except UnicodeDecodeError:
                return res.fail(
                    f"OIDC policy {pol_key} references an invalid secret {secret_key}: "
                    f"{CLIENT_SECRET_KEY} is not valid UTF-8"
                )
        elif not oidc.pkce_enable:
            return res.fail(f"Client secret is required for OIDC policy {pol_key} when not using PKCE")

        state.oidc = OIDCConfig(
            auth_endpoint=oidc.auth_endpoint,
            auth_extra_args="&".join(oidc.auth_extra_args),
            token_endpoint=oidc.token_endpoint,
            jwks_uri=oidc.jwks_uri,
            end_session_endpoint=oidc.end_session_endpoint,
            client_id=oidc.client_id,
            client_secret=client_secret,
            scope=generate_string(oidc.scope, "openid"),
            redirect_uri=generate_string(oidc.redirect_uri, "/_codexch"),
            post_logout_redirect_uri=generate_string(oidc.post_logout_redirect_uri, "/_logout"),
            zone_sync_leeway=generate_int(oidc.zone_sync_leeway, 200),
            access_token_enable=oidc.access_token_enable,
            pkce_enable=oidc.pkce_enable,
        )
        state.key = pol_key
        logger.debug(f"OIDC policy {pol_key} claimed the single sign-on slot")

    cfg.oidc = True
    return res


__all__ = ["add_oidc_config"]
