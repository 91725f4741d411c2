"""Snapshot - Immutable input of one synthesis pass.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Set

from roadconf_core.resources.policy import Policy
from roadconf_core.resources.secrets import SecretReference
from roadconf_core.resources.virtualserver import VirtualServer, VirtualServerRoute


@dataclass
class VirtualServerSnapshot:
    """A VirtualServer with everything it references.

    Attributes:
        virtual_server: The primary resource
        virtual_server_routes: Delegated resources, in delegation order
        endpoints: Endpoint key -> backend addresses
        external_name_services: ``ns/service`` keys of DNS-resolved services
        policies: ``ns/name`` -> policy catalog
        secret_refs: ``ns/name`` -> resolved secret
        waf_policies: ``ns/name`` -> firewall policy file path
        waf_log_confs: ``ns/name`` -> firewall log configuration file path
    """

    virtual_server: VirtualServer
    virtual_server_routes: List[VirtualServerRoute] = field(default_factory=list)
    endpoints: Dict[str, List[str]] = field(default_factory=dict)
    external_name_services: Set[str] = field(default_factory=set)
    policies: Dict[str, Policy] = field(default_factory=dict)
    secret_refs: Dict[str, SecretReference] = field(default_factory=dict)
    waf_policies: Dict[str, str] = field(default_factory=dict)
    waf_log_confs: Dict[str, str] = field(default_factory=dict)
    http_port: int = 80
    https_port: int = 443
    http_ipv4: str = ""
    http_ipv6: str = ""
    https_ipv4: str = ""
    https_ipv6: str = ""
    zone_sync: bool = False

    def __str__(self) -> str:
        return self.virtual_server.key


__all__ = ["VirtualServerSnapshot"]
