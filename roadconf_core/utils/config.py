"""Configuration utilities.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="_Loadable")


class _Loadable:
    """Shared loaders for the configuration dataclasses."""

    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        """Create config from dictionary."""
        # Filter to only valid fields
        valid_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in (data or {}).items() if k in valid_fields}
        return cls(**filtered)

    @classmethod
    def from_json(cls: Type[T], path: str) -> T:
        """Load config from JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_yaml(cls: Type[T], path: str) -> T:
        """Load config from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_env(cls: Type[T], prefix: str = "ROADCONF_") -> T:
        """Load config from environment variables."""
        return cls.from_dict(_env_values(prefix, cls))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def merge(self: T, other: T) -> T:
        """Merge with another config (other's non-default values take precedence)."""
        data = self.to_dict()
        defaults = type(other)().to_dict()
        for key, value in other.to_dict().items():
            if value != defaults[key]:
                data[key] = value
        return type(self).from_dict(data)


def _env_values(prefix: str, cls: type) -> Dict[str, Any]:
    """Collect prefixed environment variables, typed after the dataclass defaults."""
    defaults = {f.name: getattr(cls(), f.name) for f in fields(cls)}
    data: Dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        config_key = key[len(prefix):].lower()
        if config_key not in defaults:
            continue

        default = defaults[config_key]
        # Type conversion
        if isinstance(default, bool):
            data[config_key] = value.lower() == "true"
        elif isinstance(default, int):
            try:
                data[config_key] = int(value)
            except ValueError:
                logger.warning(f"Ignoring non-integer value for {key}: {value}")
        elif isinstance(default, list):
            data[config_key] = [v for v in value.split("\n") if v]
        else:
            data[config_key] = value

    return data


@dataclass
class ConfigParams(_Loadable):
    """Global defaults applied when a resource leaves a setting unset."""

    # Timeouts and buffers
    proxy_connect_timeout: str = "60s"
    proxy_read_timeout: str = "60s"
    proxy_send_timeout: str = "60s"
    client_max_body_size: str = "1m"
    proxy_buffering: bool = True
    proxy_buffers: str = ""
    proxy_buffer_size: str = ""
    proxy_max_temp_file_size: str = "1024m"

    # Upstreams
    lb_method: str = "random two least_conn"
    max_fails: int = 1
    max_conns: int = 0
    fail_timeout: str = "10s"
    keepalive: int = 0
    upstream_zone_size: str = "256k"

    # Server
    http2: bool = False
    server_tokens: str = "on"
    proxy_protocol: bool = False
    real_ip_header: str = ""
    set_real_ip_from: List[str] = field(default_factory=list)
    real_ip_recursive: bool = False

    # Snippets
    location_snippets: List[str] = field(default_factory=list)
    server_snippets: List[str] = field(default_factory=list)

    # Rate limit scaling
    ingress_replicas: int = 1


@dataclass
class StaticConfigParams(_Loadable):
    """Process-lifetime switches fixed at startup."""

    is_plus: bool = False
    is_resolver_configured: bool = False
    is_wildcard_enabled: bool = False
    tls_passthrough: bool = False
    enable_snippets: bool = False
    enable_internal_routes: bool = False
    service_mesh_certs: bool = False
    disable_ipv6: bool = False
    dynamic_ssl_reload: bool = False
    static_ssl_path: str = "/etc/nginx/secrets"
    dynamic_weight_changes_reload: bool = False
    waf_bundle_path: str = "/etc/nginx/waf/bundles"


def _load(cls: Type[T], path: Optional[str], env_prefix: str) -> T:
    """Load one configuration dataclass from file and environment."""
    config = cls()

    # Load from file if provided
    if path:
        path_obj = Path(path)
        if path_obj.exists():
            if path.endswith(".json"):
                config = cls.from_json(path)
            elif path.endswith((".yaml", ".yml")):
                config = cls.from_yaml(path)
            else:
                logger.warning(f"Unknown config format: {path}")
        else:
            logger.warning(f"Config file not found: {path}")

    # Override with environment variables
    env_config = cls.from_env(env_prefix)
    return config.merge(env_config)


def load_config(
    path: Optional[str] = None,
    env_prefix: str = "ROADCONF_",
) -> ConfigParams:
    """Load global defaults from multiple sources.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (if provided)
    3. Defaults
    """
    return _load(ConfigParams, path, env_prefix)


def load_static_config(
    path: Optional[str] = None,
    env_prefix: str = "ROADCONF_STATIC_",
) -> StaticConfigParams:
    """Load static switches with the same precedence as :func:`load_config`."""
    return _load(StaticConfigParams, path, env_prefix)


__all__ = [
    "ConfigParams",
    "StaticConfigParams",
    "load_config",
    "load_static_config",
]
