"""Resources module - Input model of a synthesis pass."""

from roadconf_core.resources.loader import LoadedResources, load_manifest_file, load_manifests, load_objects
from roadconf_core.resources.policy import Policy, PolicyKind
from roadconf_core.resources.secrets import Secret, SecretReference, SecretType
from roadconf_core.resources.snapshot import VirtualServerSnapshot
from roadconf_core.resources.virtualserver import (
    Action,
    ResourceRef,
    Route,
    Upstream,
    VirtualServer,
    VirtualServerRoute,
)

__all__ = [
    "Action",
    "LoadedResources",
    "Policy",
    "PolicyKind",
    "ResourceRef",
    "Route",
    "Secret",
    "SecretReference",
    "SecretType",
    "Upstream",
    "VirtualServer",
    "VirtualServerRoute",
    "VirtualServerSnapshot",
    "load_manifest_file",
    "load_manifests",
    "load_objects",
]
