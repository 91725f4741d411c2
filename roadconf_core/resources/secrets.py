"""Secrets - Resolved secret references handed to synthesis.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class SecretType(str, Enum):
    """Secret types recognised by policy and TLS handling."""

    TLS = "kubernetes.io/tls"
    CA = "nginx.org/ca"
    JWK = "nginx.org/jwk"
    HTPASSWD = "nginx.org/htpasswd"
    OIDC = "nginx.org/oidc"
    API_KEY = "nginx.org/apikey"


CA_CRL_KEY = "ca.crl"
CLIENT_SECRET_KEY = "client-secret"


@dataclass
class Secret:
    """Secret object as stored in the cluster."""

    type: str
    data: Dict[str, bytes] = field(default_factory=dict)


@dataclass
class SecretReference:
    """A secret plus where it was written on disk, or why it is unusable."""

    secret: Optional[Secret] = None
    path: str = ""
    error: Optional[str] = None

    @property
    def type(self) -> str:
        return self.secret.type if self.secret is not None else ""

    @property
    def data(self) -> Dict[str, bytes]:
        return self.secret.data if self.secret is not None else {}


def lookup_secret(secret_refs: Dict[str, SecretReference], key: str) -> SecretReference:
    """Return the reference for ``key``, or one describing it as missing."""
    ref = secret_refs.get(key)
    if ref is None:
        return SecretReference(error=f"secret {key} not found")
    return ref


__all__ = [
    "CA_CRL_KEY",
    "CLIENT_SECRET_KEY",
    "Secret",
    "SecretReference",
    "SecretType",
    "lookup_secret",
]
