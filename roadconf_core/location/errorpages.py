"""Error Pages - Custom responses for upstream status codes.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Redirect pages point the ``error_page`` directive straight at the URL.
Return pages point it at a named location that carries the literal body:

    location /api ──418/502──▶ error_page ──▶ @error_page_<route>_<page>
                                                 default_type, headers, return
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from roadconf_core.diagnostics import Warnings
from roadconf_core.document.config import ErrorPage as ErrorPageConfig
from roadconf_core.document.config import ErrorPageLocation, Header, Return
from roadconf_core.naming.namer import error_page_name
from roadconf_core.resources.virtualserver import ErrorPage, ResourceRef

# Codes with a meaning of their own in gRPC; error pages cannot override them.
GRPC_CONFLICTING_ERRORS = frozenset(
    {400, 401, 403, 404, 405, 408, 413, 414, 415, 426, 429, 495, 496, 497, 500, 501, 502, 503, 504}
)


@dataclass
class ErrorPageDetails:
    """Error pages of a route, the index naming their locations, and their owner."""

    pages: List[ErrorPage] = field(default_factory=list)
    index: int = 0
    owner: Optional[ResourceRef] = None


def generate_error_page_codes(codes: List[int]) -> str:
    return " ".join(str(code) for code in codes)


def generate_error_pages(error_page_index: int, error_pages: List[ErrorPage]) -> List[ErrorPageConfig]:
    """``error_page`` directives for a location.

    A redirect defaults to 301. A return keeps its own code, which may be 0
    to leave the upstream status untouched.
    """
    pages = []
    for i, page in enumerate(error_pages):
        if page.redirect is not None:
            code = page.redirect.code or 301
            name = page.redirect.url
        else:
            code = page.return_.code
            name = error_page_name(error_page_index, i)
        pages.append(ErrorPageConfig(name=name, codes=generate_error_page_codes(page.codes), response_code=code))
    return pages


def generate_error_page_locations(error_page_index: int, error_pages: List[ErrorPage]) -> List[ErrorPageLocation]:
    """Named locations for the return-type pages of a route."""
    locations = []
    for i, page in enumerate(error_pages):
        if page.redirect is not None:
            continue
        locations.append(
            ErrorPageLocation(
                name=error_page_name(error_page_index, i),
                default_type=page.return_.type or "text/html",
                return_=Return(text=page.return_.body),
                headers=[Header(name=h.name, value=h.value) for h in page.return_.headers],
            )
        )
    return locations


def count_error_page_locations(error_pages: List[ErrorPage]) -> int:
    return sum(1 for page in error_pages if page.redirect is None)


def check_grpc_error_page_codes(
    error_pages: ErrorPageDetails,
    is_grpc: bool,
    upstream_name: str,
    warnings: Warnings,
) -> None:
    """Warn about error page codes a gRPC upstream cannot use.

    The directives are still generated; the proxy ignores them for gRPC.
    """
    if not error_pages.pages or not is_grpc:
        return

    conflicting = [code for page in error_pages.pages for code in page.codes if code in GRPC_CONFLICTING_ERRORS]
    if conflicting:
        warnings.add(
            error_pages.owner,
            f"The error page configuration for the upstream {upstream_name} is ignored for status code(s) "
            f"[{' '.join(str(code) for code in conflicting)}], which cannot be used for GRPC upstreams.",
        )


__all__ = [
    "ErrorPageDetails",
    "GRPC_CONFLICTING_ERRORS",
    "check_grpc_error_page_codes",
    "count_error_page_locations",
    "generate_error_page_codes",
    "generate_error_page_locations",
    "generate_error_pages",
]
