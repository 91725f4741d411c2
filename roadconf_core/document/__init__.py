"""Document module - Output configuration model."""

from roadconf_core.document.config import (
    Location,
    Map,
    Parameter,
    Server,
    SplitClient,
    Upstream,
    VirtualServerConfig,
)

__all__ = [
    "Location",
    "Map",
    "Parameter",
    "Server",
    "SplitClient",
    "Upstream",
    "VirtualServerConfig",
]
