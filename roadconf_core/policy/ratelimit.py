"""Rate Limit Policy - Zones, request limits and tiered group maps.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.

A plain rate limit yields one zone keyed by the policy key. A tiered rate
limit (JWT claim or variable condition) yields a zone keyed by a map
variable, so requests outside the tier get an empty key and are not limited
by that zone:

    group source ──▶ group map ──▶ policy value ──▶ policy group map ──▶ zone key
    ($jwt_..._tier)   ($rl_..._group_...)            ($pol_rl_...)
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Dict, List

from roadconf_core.document.config import (
    AuthJWTClaimSet,
    LimitReq,
    LimitReqOptions,
    LimitReqZone,
    Map,
    Parameter,
)
from roadconf_core.policy.results import OwnerDetails, ResolvedPolicyConfig, ValidationResults
from roadconf_core.resources.policy import JWTCondition, Policy, RateLimit
from roadconf_core.utils.helpers import generate_bool, generate_int, generate_string, rfc1123_to_snake

logger = logging.getLogger(__name__)

_RATE_RE = re.compile(r"^(\d+)r/([sm])$")


def scale_rate_limit(rate: str, replicas: int) -> str:
    """Divide a rate across proxy replicas.

    Rates below one request per second are expressed per minute. The
    result is never below one request per unit.

    Examples:
        scale_rate_limit("10r/s", 2) -> "5r/s"
        scale_rate_limit("1r/s", 4) -> "15r/m"
    """
    if replicas <= 1:
        return rate
    match = _RATE_RE.match(rate)
    if match is None:
        logger.warning(f"Cannot scale rate {rate!r}; using it unchanged")
        return rate

    value = int(match.group(1)) / replicas
    unit = match.group(2)
    if value < 1 and unit == "s":
        value *= 60
        unit = "m"
    return f"{max(int(value), 1)}r/{unit}"


def auth_jwt_claim_set_variable(claim: str, vs_namespace: str, vs_name: str) -> str:
    """Variable holding a (possibly nested, dot-separated) JWT claim."""
    return f"$jwt_{vs_namespace}_{vs_name}_{'_'.join(claim.split('.'))}".replace("-", "_")


def auth_jwt_claim_set(condition: JWTCondition, owner: OwnerDetails) -> AuthJWTClaimSet:
    return AuthJWTClaimSet(
        variable=auth_jwt_claim_set_variable(condition.claim, owner.vs_namespace, owner.vs_name),
        claim=" ".join(condition.claim.split(".")),
    )


def _scaled_rate(policy: Policy, replicas: int, zone_sync: bool) -> str:
    rate_limit: RateLimit = policy.spec
    if not rate_limit.scale:
        return rate_limit.rate
    if zone_sync:
        logger.warning(
            f"Policy {policy.key}: both zone sync and rate limit scale are enabled, "
            f"the rate limit scale value will not be used."
        )
        return rate_limit.rate
    return scale_rate_limit(rate_limit.rate, replicas)


def limit_req_zone(zone_name: str, policy: Policy, replicas: int, zone_sync: bool) -> LimitReqZone:
    """Zone of an ungrouped rate limit."""
    rate_limit: RateLimit = policy.spec
    return LimitReqZone(
        zone_name=zone_name,
        key=rate_limit.key,
        zone_size=rate_limit.zone_size,
        rate=_scaled_rate(policy, replicas, zone_sync),
        sync=zone_sync,
    )


def grouped_limit_req_zone(
    zone_name: str,
    policy: Policy,
    replicas: int,
    owner: OwnerDetails,
    zone_sync: bool,
    context: str,
    path: str,
) -> LimitReqZone:
    """Zone of a tiered rate limit, carrying its group map fields."""
    rate_limit: RateLimit = policy.spec
    zone = limit_req_zone(zone_name, policy, replicas, zone_sync)
    condition = rate_limit.condition
    enc_path = base64.urlsafe_b64encode(path.encode()).decode().rstrip("=")

    if condition.jwt is not None:
        claim = condition.jwt.claim
        zone.group_value = condition.jwt.match
        zone.policy_value = f"rl_{owner.vs_namespace}_{owner.vs_name}_match_{condition.jwt.match.lower()}"
        zone.group_variable = rfc1123_to_snake(
            f"$rl_{owner.vs_namespace}_{owner.vs_name}_group_{'_'.join(claim.split('.')).lower()}_{context}_{enc_path}"
        )
        zone.key = rfc1123_to_snake(f"${zone_name}")
        zone.policy_result = rate_limit.key
        zone.group_default = condition.default
        zone.group_source = auth_jwt_claim_set_variable(claim, owner.vs_namespace, owner.vs_name)

    if condition.variables:
        variable = condition.variables[0]
        zone.group_value = f'"{variable.match}"'
        zone.policy_value = rfc1123_to_snake(f"rl_{owner.vs_namespace}_{owner.vs_name}_match_{policy.name.lower()}")
        zone.group_variable = rfc1123_to_snake(
            f"$rl_{owner.vs_namespace}_{owner.vs_name}_variable_{variable.name.replace('$', '')}_{context}_{enc_path}"
        )
        zone.key = rfc1123_to_snake(f"${zone_name}")
        zone.policy_result = rate_limit.key
        zone.group_default = condition.default
        zone.group_source = variable.name

    return zone


def policy_group_map(zone: LimitReqZone) -> Map:
    """Map from a group variable to the zone key.

    The result is prefixed with ``Val`` so a matched request never maps
    to an empty key.
    """
    return Map(
        source=zone.group_variable,
        variable=f"${rfc1123_to_snake(zone.zone_name)}",
        parameters=[
            Parameter(value="default", result="''"),
            Parameter(value=zone.policy_value, result=f"Val{zone.policy_result}"),
        ],
    )


def group_maps(zones: List[LimitReqZone]) -> List[Map]:
    """Merge tiered zones sharing a group variable into one map each.

    Later zones put their branches in front of earlier ones.
    """
    maps: Dict[str, Map] = {}
    for zone in zones:
        if not zone.group_variable:
            continue
        params = [Parameter(value=zone.group_value, result=zone.policy_value)]
        if zone.group_default:
            params.append(Parameter(value="default", result=zone.policy_value))
        existing = maps.get(zone.group_variable)
        if existing is not None:
            params.extend(existing.parameters)
        maps[zone.group_variable] = Map(source=zone.group_source, variable=zone.group_variable, parameters=params)
    return list(maps.values())


def limit_req(zone_name: str, rate_limit: RateLimit) -> LimitReq:
    no_delay = generate_bool(rate_limit.no_delay, False)
    return LimitReq(
        zone_name=zone_name,
        burst=generate_int(rate_limit.burst, 0),
        delay=0 if no_delay else generate_int(rate_limit.delay, 0),
        no_delay=no_delay,
    )


def limit_req_options(rate_limit: RateLimit) -> LimitReqOptions:
    return LimitReqOptions(
        dry_run=generate_bool(rate_limit.dry_run, False),
        log_level=generate_string(rate_limit.log_level, "error"),
        reject_code=generate_int(rate_limit.reject_code, 503),
    )


def _format_option(value: object) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def add_rate_limit_config(
    cfg: ResolvedPolicyConfig,
    policy: Policy,
    owner: OwnerDetails,
    replicas: int,
    zone_sync: bool,
    context: str,
    path: str,
) -> ValidationResults:
    """Add a rate-limit policy to the context.

    The first rate limit in a context sets the shared options. Later ones
    that disagree are reported and overridden.
    """
    res = ValidationResults()
    rate_limit: RateLimit = policy.spec
    state = cfg.rate_limit

    zone_name = rfc1123_to_snake(f"pol_rl_{policy.namespace}_{policy.name}_{owner.vs_namespace}_{owner.vs_name}")
    if zone_sync:
        zone_name = f"{zone_name}_sync"

    if rate_limit.condition is not None:
        zone = grouped_limit_req_zone(zone_name, policy, replicas, owner, zone_sync, context, path)
        state.policy_group_maps.append(policy_group_map(zone))
        jwt = rate_limit.condition.jwt
        if jwt is not None and jwt.claim and jwt.match:
            state.auth_jwt_claim_sets.append(auth_jwt_claim_set(jwt, owner))
    else:
        zone = limit_req_zone(zone_name, policy, replicas, zone_sync)
    state.zones.append(zone)

    state.reqs.append(limit_req(zone_name, rate_limit))
    current = limit_req_options(rate_limit)
    if len(state.reqs) == 1:
        state.options = current
        return res

    for option, attr in (("dryRun", "dry_run"), ("logLevel", "log_level"), ("rejectCode", "reject_code")):
        mine, first = getattr(current, attr), getattr(state.options, attr)
        if mine != first:
            res.add_warning(
                f"RateLimit policy {policy.key} with limit request option {option}='{_format_option(mine)}' "
                f"is overridden to {option}='{_format_option(first)}' by the first policy reference in this context"
            )
    return res


def has_duplicate_map_defaults(m: Map) -> bool:
    return m.default_count() > 1


__all__ = [
    "add_rate_limit_config",
    "auth_jwt_claim_set",
    "auth_jwt_claim_set_variable",
    "group_maps",
    "grouped_limit_req_zone",
    "has_duplicate_map_defaults",
    "limit_req",
    "limit_req_options",
    "limit_req_zone",
    "policy_group_map",
    "scale_rate_limit",
]
