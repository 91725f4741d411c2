"""Location Generator - Location blocks for route actions.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

Three kinds of action produce three kinds of location:

    ┌──────────┐     ┌──────────────────────────────────────────────────────┐
    │ redirect │────▶│ proxy to the 418 server, error_page 418 =<code> URL  │
    ├──────────┤     ├──────────────────────────────────────────────────────┤
    │ return   │────▶│ proxy to the 418 server, error_page 418 =<code>      │
    │          │     │ @return_<n>, plus a named location with the body     │
    ├──────────┤     ├──────────────────────────────────────────────────────┤
    │ pass /   │────▶│ proxy_pass / grpc_pass to the upstream with timeouts,│
    │ proxy    │     │ buffers, headers, rewrites and error pages           │
    └──────────┘     └──────────────────────────────────────────────────────┘

Redirects and returns go through the 418 server because a named internal
location cannot redirect or return directly in every context they are used.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from roadconf_core.diagnostics import Warnings
from roadconf_core.document.config import AddHeader
from roadconf_core.document.config import ErrorPage as ErrorPageConfig
from roadconf_core.document.config import Header, Location, Return, ReturnLocation
from roadconf_core.location.errorpages import ErrorPageDetails, check_grpc_error_page_codes, generate_error_pages
from roadconf_core.naming.namer import return_location_name
from roadconf_core.resources.virtualserver import (
    Action,
    ActionProxy,
    ActionRedirect,
    ActionReturn,
    Upstream,
    UpstreamBuffers,
    VirtualServerRoute,
)
from roadconf_core.utils.config import ConfigParams
from roadconf_core.utils.helpers import (
    generate_bool,
    generate_path,
    generate_snippets,
    generate_string,
    generate_time_with_default,
)

NGINX_418_SERVER = "unix:/var/lib/nginx/nginx-418-server.sock"


def generate_proxy_pass_protocol(enable_tls: bool) -> str:
    return "https" if enable_tls else "http"


def generate_grpc_pass_protocol(enable_tls: bool) -> str:
    return "grpcs" if enable_tls else "grpc"


def generate_proxy_pass(tls_enabled: bool, upstream_name: str, internal: bool, proxy: Optional[ActionProxy]) -> str:
    """``proxy_pass`` target.

    Internal locations without a rewrite pass the original request URI,
    since the internal redirect replaced it.
    """
    proxy_pass = f"{generate_proxy_pass_protocol(tls_enabled)}://{upstream_name}"
    if internal and (proxy is None or not proxy.rewrite_path):
        return f"{proxy_pass}$request_uri"
    return proxy_pass


def generate_grpc_pass(grpc_enabled: bool, tls_enabled: bool, upstream_name: str) -> str:
    if not grpc_enabled:
        return ""
    return f"{generate_grpc_pass_protocol(tls_enabled)}://{upstream_name}"


def generate_buffers(buffers: Optional[UpstreamBuffers], default: str) -> str:
    if buffers is None:
        return default
    return f"{buffers.number} {buffers.size}"


def upstream_has_keepalive(upstream: Upstream, cfg: ConfigParams) -> bool:
    if upstream.keepalive is not None:
        return upstream.keepalive != 0
    return cfg.keepalive != 0


def generate_rewrites(
    path: str,
    proxy: Optional[ActionProxy],
    internal: bool,
    original_path: str,
    grpc_enabled: bool,
) -> List[str]:
    """Rewrite directives for a proxying location.

    Without a rewrite path, only internal gRPC locations need one, to
    restore the request target. With one:

    - a regex route path rewrites the matched prefix
    - an internal location with a prefix path rewrites the prefix and keeps
      the rest of the URI
    - a public prefix location rewrites through ``proxy_pass`` instead
    """
    if proxy is None or not proxy.rewrite_path:
        if grpc_enabled and internal:
            return ["^ $request_uri break"]
        return []

    if original_path:
        path = original_path

    is_regex = path.startswith("~")
    trimmed = path[1:] if is_regex else path
    if trimmed.startswith("*"):
        trimmed = trimmed[1:]
    trimmed = trimmed.strip()

    rewrites = []
    if internal:
        # Recover the URI without arguments, or the rewrite below duplicates them.
        rewrites.append("^ $request_uri_no_args")

    if is_regex:
        # Always anchored; an existing anchor is not doubled.
        if trimmed.startswith("^"):
            trimmed = trimmed[1:]
        rewrites.append(f'"^{trimmed}" "{proxy.rewrite_path}" break')
    elif internal:
        rewrites.append(f'"^{trimmed}(.*)$" "{proxy.rewrite_path}$1" break')

    return rewrites


def generate_proxy_pass_rewrite(path: str, proxy: Optional[ActionProxy], internal: bool) -> str:
    if proxy is None or internal:
        return ""
    if path.startswith("/") or path.startswith("="):
        return proxy.rewrite_path
    return ""


def generate_proxy_set_headers(proxy: Optional[ActionProxy]) -> List[Header]:
    """Request headers to set, with ``Host: $host`` unless a Host header is set."""
    headers = []
    has_host_header = False

    if proxy is not None and proxy.request_headers is not None:
        for header in proxy.request_headers.set:
            headers.append(Header(name=header.name, value=header.value))
            if header.name.lower() == "host":
                has_host_header = True

    if not has_host_header:
        headers.append(Header(name="Host", value="$host"))
    return headers


def generate_proxy_pass_request_headers(proxy: Optional[ActionProxy]) -> bool:
    if proxy is None or proxy.request_headers is None:
        return True
    return generate_bool(proxy.request_headers.pass_, True)


def generate_proxy_hide_headers(proxy: Optional[ActionProxy]) -> List[str]:
    if proxy is None or proxy.response_headers is None:
        return []
    return list(proxy.response_headers.hide)


def generate_proxy_pass_headers(proxy: Optional[ActionProxy]) -> List[str]:
    if proxy is None or proxy.response_headers is None:
        return []
    return list(proxy.response_headers.pass_)


def generate_proxy_ignore_headers(proxy: Optional[ActionProxy]) -> str:
    if proxy is None or proxy.response_headers is None:
        return ""
    return " ".join(proxy.response_headers.ignore)


def generate_proxy_add_headers(proxy: Optional[ActionProxy]) -> List[AddHeader]:
    if proxy is None or proxy.response_headers is None:
        return []
    return [AddHeader(name=h.name, value=h.value, always=h.always) for h in proxy.response_headers.add]


def generate_location_for_redirect(path: str, snippets: List[str], redirect: ActionRedirect) -> Location:
    return Location(
        path=path,
        snippets=snippets,
        proxy_intercept_errors=True,
        internal_proxy_pass=f"http://{NGINX_418_SERVER}",
        error_pages=[ErrorPageConfig(name=redirect.url, codes="418", response_code=redirect.code or 301)],
    )


def generate_location_for_return(
    path: str,
    snippets: List[str],
    action_return: ActionReturn,
    return_index: int,
) -> Tuple[Location, ReturnLocation]:
    """Location for a return action and the named location holding the response."""
    name = return_location_name(return_index)
    location = Location(
        path=path,
        snippets=snippets,
        proxy_intercept_errors=True,
        internal_proxy_pass=f"http://{NGINX_418_SERVER}",
        error_pages=[ErrorPageConfig(name=name, codes="418", response_code=action_return.code or 200)],
    )
    return_location = ReturnLocation(
        name=name,
        default_type=action_return.type or "text/plain",
        return_=Return(text=action_return.body),
        headers=[Header(name=h.name, value=h.value) for h in action_return.headers],
    )
    return location, return_location


def generate_location_for_proxying(
    path: str,
    upstream_name: str,
    upstream: Upstream,
    cfg: ConfigParams,
    error_pages: ErrorPageDetails,
    internal: bool,
    proxy_ssl_name: str,
    proxy: Optional[ActionProxy],
    original_path: str,
    snippets: List[str],
    vsr: Optional[VirtualServerRoute] = None,
) -> Location:
    """Location proxying to an upstream, with unset knobs taken from ``cfg``."""
    return Location(
        path=generate_path(path),
        internal=internal,
        snippets=snippets,
        proxy_connect_timeout=generate_time_with_default(upstream.proxy_connect_timeout, cfg.proxy_connect_timeout),
        proxy_read_timeout=generate_time_with_default(upstream.proxy_read_timeout, cfg.proxy_read_timeout),
        proxy_send_timeout=generate_time_with_default(upstream.proxy_send_timeout, cfg.proxy_send_timeout),
        client_max_body_size=generate_string(upstream.client_max_body_size, cfg.client_max_body_size),
        proxy_max_temp_file_size=cfg.proxy_max_temp_file_size,
        proxy_buffering=generate_bool(upstream.proxy_buffering, cfg.proxy_buffering),
        proxy_buffers=generate_buffers(upstream.proxy_buffers, cfg.proxy_buffers),
        proxy_buffer_size=generate_string(upstream.proxy_buffer_size, cfg.proxy_buffer_size),
        proxy_pass=generate_proxy_pass(upstream.tls.enable, upstream_name, internal, proxy),
        proxy_next_upstream=generate_string(upstream.proxy_next_upstream, "error timeout"),
        proxy_next_upstream_timeout=generate_time_with_default(upstream.proxy_next_upstream_timeout, "0s"),
        proxy_next_upstream_tries=upstream.proxy_next_upstream_tries,
        proxy_intercept_errors=bool(error_pages.pages),
        proxy_pass_request_headers=generate_proxy_pass_request_headers(proxy),
        proxy_set_headers=generate_proxy_set_headers(proxy),
        proxy_hide_headers=generate_proxy_hide_headers(proxy),
        proxy_pass_headers=generate_proxy_pass_headers(proxy),
        proxy_ignore_headers=generate_proxy_ignore_headers(proxy),
        add_headers=generate_proxy_add_headers(proxy),
        proxy_pass_rewrite=generate_proxy_pass_rewrite(path, proxy, internal),
        rewrites=generate_rewrites(path, proxy, internal, original_path, upstream.is_grpc),
        has_keepalive=upstream_has_keepalive(upstream, cfg),
        error_pages=generate_error_pages(error_pages.index, error_pages.pages),
        proxy_ssl_name=proxy_ssl_name,
        service_name=upstream.service,
        is_vsr=vsr is not None,
        vsr_name=vsr.name if vsr is not None else "",
        vsr_namespace=vsr.namespace if vsr is not None else "",
        grpc_pass=generate_grpc_pass(upstream.is_grpc, upstream.tls.enable, upstream_name),
    )


def generate_location(
    path: str,
    upstream_name: str,
    upstream: Optional[Upstream],
    action: Action,
    cfg: ConfigParams,
    error_pages: ErrorPageDetails,
    warnings: Warnings,
    internal: bool = False,
    proxy_ssl_name: str = "",
    original_path: str = "",
    location_snippets: str = "",
    enable_snippets: bool = False,
    return_index: int = 0,
    vsr: Optional[VirtualServerRoute] = None,
) -> Tuple[Location, Optional[ReturnLocation]]:
    """Generate the location for one action.

    Args:
        path: Location path, a route path or an internal split/match path
        upstream_name: Full upstream name the action proxies to
        upstream: Upstream definition, unused for redirects and returns
        action: The route action
        cfg: Global defaults
        error_pages: Error pages of the route and their index
        warnings: Warnings of the synthesis pass
        internal: Whether the location is only reachable by internal redirect
        proxy_ssl_name: Server name sent to a TLS upstream
        original_path: Path of the route the location belongs to
        location_snippets: Route snippets, used when snippets are enabled
        enable_snippets: Whether resource snippets are honoured
        return_index: Index naming the return location of a return action
        vsr: Delegated resource the location belongs to, if any

    Returns:
        Tuple of (location, return location or None)
    """
    snippets = generate_snippets(enable_snippets, location_snippets, cfg.location_snippets)

    if action.redirect is not None:
        return generate_location_for_redirect(path, snippets, action.redirect), None

    if action.return_ is not None:
        # Return locations always carry the global snippets.
        return generate_location_for_return(path, list(cfg.location_snippets), action.return_, return_index)

    check_grpc_error_page_codes(error_pages, upstream.is_grpc, upstream.name, warnings)

    location = generate_location_for_proxying(
        path,
        upstream_name,
        upstream,
        cfg,
        error_pages,
        internal,
        proxy_ssl_name,
        action.proxy,
        original_path,
        snippets,
        vsr,
    )
    return location, None


__all__ = [
    "NGINX_418_SERVER",
    "generate_buffers",
    "generate_grpc_pass",
    "generate_location",
    "generate_location_for_proxying",
    "generate_location_for_redirect",
    "generate_location_for_return",
    "generate_proxy_add_headers",
    "generate_proxy_pass",
    "generate_proxy_pass_request_headers",
    "generate_proxy_pass_rewrite",
    "generate_proxy_set_headers",
    "generate_rewrites",
    "upstream_has_keepalive",
]
