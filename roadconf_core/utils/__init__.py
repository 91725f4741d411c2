"""Utils module - Configuration and value helpers."""

from roadconf_core.utils.config import (
    ConfigParams,
    StaticConfigParams,
    load_config,
    load_static_config,
)
from roadconf_core.utils.helpers import (
    generate_bool,
    generate_int,
    generate_string,
    generate_time,
    generate_time_with_default,
    parse_time,
    parse_url,
    rfc1123_to_snake,
)

__all__ = [
    "ConfigParams",
    "StaticConfigParams",
    "load_config",
    "load_static_config",
    "generate_bool",
    "generate_int",
    "generate_string",
    "generate_time",
    "generate_time_with_default",
    "parse_time",
    "parse_url",
    "rfc1123_to_snake",
]
