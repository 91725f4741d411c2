"""Location module - Location blocks and error pages for route actions."""

from roadconf_core.location.errorpages import (
    ErrorPageDetails,
    check_grpc_error_page_codes,
    generate_error_page_locations,
    generate_error_pages,
)
from roadconf_core.location.location import (
    NGINX_418_SERVER,
    generate_location,
    generate_rewrites,
)

__all__ = [
    "ErrorPageDetails",
    "NGINX_418_SERVER",
    "check_grpc_error_page_codes",
    "generate_error_page_locations",
    "generate_error_pages",
    "generate_location",
    "generate_rewrites",
]
