"""RoadConf - Virtual server configuration synthesis.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

RoadConf compiles routing resources into proxy configuration documents:
- Virtual servers with delegated route resources
- Weighted splits, including runtime-adjustable two-way splits
- Conditional matches on headers, cookies, arguments and variables
- Policies (access control, rate limits, JWT, basic auth, mTLS, OIDC,
  API keys, WAF) resolved per context, failing closed
- Upstreams with health checks, slow start, queues and sticky sessions

Architecture Overview:
┌─────────────────────────────────────────────────────────────────────────────┐
│                               RoadConf                                       │
├─────────────────────────────────────────────────────────────────────────────┤
│                                                                              │
│  ┌───────────────────────────────────────────────────────────────────────┐  │
│  │                          Synthesis Pass                                │  │
│  │  Manifests ──▶ Snapshot ──▶ Configurator ──▶ Document + Warnings      │  │
│  └───────────────────────────────────────────────────────────────────────┘  │
│                                                                              │
│  ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────────────────┐ │
│  │   Resources     │  │     Policy      │  │        Routing              │ │
│  │                 │  │                 │  │                             │ │
│  │ - VirtualServer │  │ - Resolver      │  │ - Splits                    │ │
│  │ - Route         │  │ - Rate limits   │  │ - Weight tables             │ │
│  │ - Policy        │  │ - Auth, mTLS    │  │ - Matches                   │ │
│  │ - Loader        │  │ - OIDC, WAF     │  │ - Index allocation          │ │
│  └─────────────────┘  └─────────────────┘  └─────────────────────────────┘ │
│                                                                              │
│  ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────────────────┐ │
│  │    Location     │  │    Upstream     │  │        Naming               │ │
│  │                 │  │                 │  │                             │ │
│  │ - Proxying      │  │ - Endpoints     │  │ - Upstream names            │ │
│  │ - Redirects     │  │ - LB defaults   │  │ - Map variables             │ │
│  │ - Returns       │  │ - Health checks │  │ - Internal locations        │ │
│  │ - Error pages   │  │ - Plus features │  │ - Endpoint keys             │ │
│  └─────────────────┘  └─────────────────┘  └─────────────────────────────┘ │
│                                                                              │
└─────────────────────────────────────────────────────────────────────────────┘

Synthesis Flow:
1. TLS and the virtual server's own policies are resolved
2. Upstreams of the virtual server and its routes are generated
3. Each route compiles to locations, maps and split-clients blocks
4. Delegated subroutes inherit overrides from the delegating route
5. Maps, rate-limit zones and claim sets are deduplicated
6. Upstreams are sorted by name

Usage:
    from roadconf_core import VirtualServerConfigurator, load_config, load_static_config

    configurator = VirtualServerConfigurator(load_config(), load_static_config())
    vs_config, warnings = configurator.generate(snapshot)

    for ref, messages in warnings.items():
        print(ref, messages)
    print(vs_config.to_yaml())
"""

__version__ = "0.1.0"
__author__ = "BlackRoad OS, Inc."

# Errors and diagnostics
from roadconf_core.diagnostics import Warnings
from roadconf_core.errors import BundleNotFoundError, PolicyKindError, ResourceError, RoadConfError

# Resources
from roadconf_core.resources.loader import LoadedResources, load_manifest_file, load_manifests
from roadconf_core.resources.policy import Policy, PolicyKind
from roadconf_core.resources.secrets import Secret, SecretReference
from roadconf_core.resources.snapshot import VirtualServerSnapshot
from roadconf_core.resources.virtualserver import VirtualServer, VirtualServerRoute

# Document
from roadconf_core.document.config import VirtualServerConfig

# Policy
from roadconf_core.policy.resolver import PolicyResolver
from roadconf_core.policy.waf import BundleValidator

# Routing
from roadconf_core.routing.context import CompilationContext

# Upstreams
from roadconf_core.upstream.upstream import UpstreamGenerator, create_upstreams_for_plus

# Synthesis
from roadconf_core.synthesis.configurator import VirtualServerConfigurator

# Utils
from roadconf_core.utils.config import ConfigParams, StaticConfigParams, load_config, load_static_config

__all__ = [
    # Version
    "__version__",
    # Errors
    "BundleNotFoundError",
    "PolicyKindError",
    "ResourceError",
    "RoadConfError",
    "Warnings",
    # Resources
    "LoadedResources",
    "Policy",
    "PolicyKind",
    "Secret",
    "SecretReference",
    "VirtualServer",
    "VirtualServerRoute",
    "VirtualServerSnapshot",
    "load_manifest_file",
    "load_manifests",
    # Document
    "VirtualServerConfig",
    # Policy
    "BundleValidator",
    "PolicyResolver",
    # Routing
    "CompilationContext",
    # Upstreams
    "UpstreamGenerator",
    "create_upstreams_for_plus",
    # Synthesis
    "VirtualServerConfigurator",
    # Utils
    "ConfigParams",
    "StaticConfigParams",
    "load_config",
    "load_static_config",
]
