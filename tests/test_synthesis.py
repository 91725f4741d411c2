"""Virtual server synthesis tests."""

from roadconf_core import VirtualServerConfigurator
from roadconf_core.document.config import (
    AuthJWTClaimSet,
    LimitReqZone,
    Map,
    Return,
    StatusMatch,
    TLSRedirect,
)
from roadconf_core.resources.policy import AccessControl, APIKey, Policy, SuppliedIn
from roadconf_core.resources.secrets import Secret, SecretReference
from roadconf_core.resources.snapshot import VirtualServerSnapshot
from roadconf_core.resources.virtualserver import (
    TLS,
    Action,
    ErrorPage,
    ErrorPageReturn,
    HealthCheck,
    PolicyReference,
    Route,
    Split,
    TLSRedirect as TLSRedirectSpec,
    Upstream,
    UpstreamTLS,
    VirtualServer,
    VirtualServerRoute,
)
from roadconf_core.synthesis.configurator import (
    WILDCARD_PEM_FILE,
    remove_duplicate_auth_jwt_claim_sets,
    remove_duplicate_limit_req_zones,
    remove_duplicate_maps,
)
from roadconf_core.upstream import NGINX_502_SERVER
from roadconf_core.utils.config import ConfigParams, StaticConfigParams


def make_vs(**kwargs):
    kwargs.setdefault(
        "upstreams",
        [
            Upstream(name="tea", service="tea-svc", port=80),
            Upstream(name="coffee", service="coffee-svc", port=80),
        ],
    )
    kwargs.setdefault(
        "routes",
        [
            Route(path="/tea", action=Action(pass_="tea")),
            Route(path="/coffee", action=Action(pass_="coffee")),
        ],
    )
    return VirtualServer(name="cafe", namespace="default", host="cafe.example.com", **kwargs)


def make_vsr(**kwargs):
    kwargs.setdefault("upstreams", [Upstream(name="latte", service="latte-svc", port=80)])
    kwargs.setdefault("subroutes", [Route(path="/coffee/latte", action=Action(pass_="latte"))])
    return VirtualServerRoute(name="coffee", namespace="default", host="cafe.example.com", **kwargs)


def generate(snapshot, cfg=None, static=None):
    configurator = VirtualServerConfigurator(cfg or ConfigParams(), static or StaticConfigParams())
    return configurator.generate(snapshot)


def tls_secret():
    return {"default/cafe-secret": SecretReference(Secret("kubernetes.io/tls"), path="/etc/nginx/secrets/cafe")}


class TestGenerate:
    """Test a complete synthesis pass."""

    def test_basic_virtual_server(self):
        """Test server, locations and upstreams for plain routes."""
        snapshot = VirtualServerSnapshot(make_vs(), endpoints={"default/tea-svc:80": ["10.0.0.1:80"]})

        vs_config, warnings = generate(snapshot)

        assert not warnings
        server = vs_config.server
        assert server.server_name == "cafe.example.com"
        assert server.status_zone == "cafe.example.com"
        assert server.vs_namespace == "default"
        assert server.vs_name == "cafe"
        assert server.ssl is None
        assert [loc.path for loc in server.locations] == ["/tea", "/coffee"]
        assert server.locations[0].proxy_pass == "http://vs_default_cafe_tea"
        assert server.locations[0].proxy_ssl_name == "tea-svc.default.svc"

    def test_upstreams_sorted(self):
        """Test upstream blocks are sorted by name."""
        snapshot = VirtualServerSnapshot(make_vs(), endpoints={"default/tea-svc:80": ["10.0.0.1:80"]})

        vs_config, _ = generate(snapshot)

        assert [u.name for u in vs_config.upstreams] == ["vs_default_cafe_coffee", "vs_default_cafe_tea"]
        assert vs_config.upstreams[0].servers[0].address == NGINX_502_SERVER
        assert vs_config.upstreams[1].servers[0].address == "10.0.0.1:80"

    def test_deterministic(self):
        """Test the same snapshot yields the same document."""
        vs = make_vs(
            routes=[
                Route(
                    path="/tea",
                    splits=[Split(weight=40, action=Action(pass_="tea")), Split(weight=60, action=Action(pass_="coffee"))],
                )
            ]
        )
        snapshot = VirtualServerSnapshot(vs)

        first, _ = generate(snapshot)
        second, _ = generate(snapshot)

        assert first.to_yaml() == second.to_yaml()
        assert first.to_dict() == second.to_dict()

    def test_unknown_upstream(self):
        """Test an undeclared upstream is reported and the other routes still compile."""
        vs = make_vs(
            routes=[
                Route(path="/milk", action=Action(pass_="milk")),
                Route(path="/tea", action=Action(pass_="tea")),
            ]
        )

        vs_config, warnings = generate(VirtualServerSnapshot(vs))

        assert warnings.get(vs.ref) == ["Upstream vs_default_cafe_milk is referenced by an action but not defined"]
        assert [loc.path for loc in vs_config.server.locations] == ["/milk", "/tea"]
        assert vs_config.server.locations[1].proxy_pass == "http://vs_default_cafe_tea"
        assert "vs_default_cafe_milk" not in [u.name for u in vs_config.upstreams]

    def test_static_switches(self):
        """Test static switches copied into the document."""
        static = StaticConfigParams(service_mesh_certs=True, dynamic_ssl_reload=True, tls_passthrough=True)

        vs_config, _ = generate(VirtualServerSnapshot(make_vs()), static=static)

        assert vs_config.spiffe_certs is False
        assert vs_config.spiffe_client_certs is True
        assert vs_config.dynamic_ssl_reload_enabled is True
        assert vs_config.static_ssl_path == "/etc/nginx/secrets"
        assert vs_config.server.tls_passthrough is True


class TestTLS:
    """Test TLS termination and redirects."""

    def test_secret(self):
        """Test a valid secret is used for the certificate and key."""
        vs = make_vs(tls=TLS(secret="cafe-secret", redirect=TLSRedirectSpec(enable=True)))
        snapshot = VirtualServerSnapshot(vs, secret_refs=tls_secret())

        vs_config, warnings = generate(snapshot, cfg=ConfigParams(http2=True))

        ssl = vs_config.server.ssl
        assert ssl.certificate == "/etc/nginx/secrets/cafe"
        assert ssl.certificate_key == "/etc/nginx/secrets/cafe"
        assert ssl.http2 is True
        assert ssl.reject_handshake is False
        assert vs_config.server.tls_redirect == TLSRedirect(code=301, based_on="$scheme")
        assert not warnings

    def test_redirect_based_on_header(self):
        """Test redirects based on the forwarded protocol header."""
        vs = make_vs(
            tls=TLS(
                secret="cafe-secret",
                redirect=TLSRedirectSpec(enable=True, code=308, based_on="x-forwarded-proto"),
            )
        )

        vs_config, _ = generate(VirtualServerSnapshot(vs, secret_refs=tls_secret()))

        assert vs_config.server.tls_redirect == TLSRedirect(code=308, based_on="$http_x_forwarded_proto")

    def test_missing_secret_rejects_handshake(self):
        """Test a missing secret rejects handshakes and warns."""
        vs = make_vs(tls=TLS(secret="cafe-secret"))

        vs_config, warnings = generate(VirtualServerSnapshot(vs))

        assert vs_config.server.ssl.reject_handshake is True
        assert vs_config.server.ssl.certificate == ""
        assert warnings.get(vs.ref) == ["TLS secret cafe-secret is invalid: secret default/cafe-secret not found"]

    def test_wrong_secret_type(self):
        """Test a secret of the wrong type rejects handshakes."""
        vs = make_vs(tls=TLS(secret="cafe-secret"))
        refs = {"default/cafe-secret": SecretReference(Secret("nginx.org/ca"), path="/x")}

        vs_config, warnings = generate(VirtualServerSnapshot(vs, secret_refs=refs))

        assert vs_config.server.ssl.reject_handshake is True
        assert warnings.get(vs.ref) == [
            "TLS secret cafe-secret is of a wrong type 'nginx.org/ca', must be 'kubernetes.io/tls'"
        ]

    def test_wildcard(self):
        """Test TLS without a secret uses the wildcard certificate when enabled."""
        vs = make_vs(tls=TLS())

        with_wildcard, _ = generate(VirtualServerSnapshot(vs), static=StaticConfigParams(is_wildcard_enabled=True))
        without_wildcard, _ = generate(VirtualServerSnapshot(vs))

        assert with_wildcard.server.ssl.certificate == WILDCARD_PEM_FILE
        assert without_wildcard.server.ssl is None


class TestUpstreamHandling:
    """Test upstream related warnings and health checks."""

    def test_grpc_without_tls_warns(self):
        """Test gRPC upstreams need HTTP/2 and TLS."""
        vs = make_vs(
            upstreams=[Upstream(name="tea", service="tea-svc", port=80, type="grpc")],
            routes=[Route(path="/tea", action=Action(pass_="tea"))],
        )

        _, warnings = generate(VirtualServerSnapshot(vs))

        assert warnings.get(vs.ref) == [
            "gRPC cannot be configured for upstream tea. gRPC requires enabled HTTP/2 and TLS termination."
        ]

    def test_health_checks_premium_only(self):
        """Test health checks and status matches on the premium tier."""
        vs = make_vs(
            upstreams=[
                Upstream(
                    name="tea",
                    service="tea-svc",
                    port=80,
                    health_check=HealthCheck(enable=True, status_match="200"),
                )
            ],
            routes=[Route(path="/tea", action=Action(pass_="tea"))],
        )

        plus, _ = generate(VirtualServerSnapshot(vs), static=StaticConfigParams(is_plus=True))
        oss, _ = generate(VirtualServerSnapshot(vs))

        assert [hc.name for hc in plus.server.health_checks] == ["vs_default_cafe_tea"]
        assert plus.status_matches == [StatusMatch(name="vs_default_cafe_tea_match", code="200")]
        assert oss.server.health_checks == []
        assert oss.status_matches == []

    def test_internal_route_needs_flag(self):
        """Test internal routes are ignored unless enabled."""
        vs = make_vs(internal_route=True)

        _, warnings = generate(VirtualServerSnapshot(vs))

        assert warnings.get(vs.ref) == [
            "Internal Route cannot be configured for virtual server cafe. "
            "Internal Routes can be enabled by setting the enable-internal-routes flag"
        ]

    def test_internal_route_disables_upstream_tls(self):
        """Test upstreams of internal routes use plain text."""
        vs = make_vs(
            internal_route=True,
            upstreams=[Upstream(name="tea", service="tea-svc", port=80, tls=UpstreamTLS(enable=True))],
            routes=[Route(path="/tea", action=Action(pass_="tea"))],
        )
        static = StaticConfigParams(enable_internal_routes=True, service_mesh_certs=True)

        vs_config, warnings = generate(VirtualServerSnapshot(vs), static=static)

        assert not warnings
        assert vs_config.server.locations[0].proxy_pass == "http://vs_default_cafe_tea"
        assert vs_config.spiffe_certs is True
        assert vs_config.spiffe_client_certs is False

    def test_service_mesh_without_internal_route(self):
        """Test a plain virtual server keeps client certificates when internal routes are enabled."""
        static = StaticConfigParams(enable_internal_routes=True, service_mesh_certs=True)

        vs_config, _ = generate(VirtualServerSnapshot(make_vs()), static=static)

        assert vs_config.spiffe_certs is False
        assert vs_config.spiffe_client_certs is True

    def test_internal_route_without_service_mesh(self):
        """Test an internal route uses service mesh certificates without client certificates."""
        static = StaticConfigParams(enable_internal_routes=True)

        vs_config, _ = generate(VirtualServerSnapshot(make_vs(internal_route=True)), static=static)

        assert vs_config.spiffe_certs is True
        assert vs_config.spiffe_client_certs is False

    def test_ignored_internal_route_flags(self):
        """Test an internal route without the global switch counts as a plain virtual server."""
        static = StaticConfigParams(service_mesh_certs=True)

        vs_config, _ = generate(VirtualServerSnapshot(make_vs(internal_route=True)), static=static)

        assert vs_config.spiffe_certs is False
        assert vs_config.spiffe_client_certs is True

    def test_service_mesh_enables_upstream_tls(self):
        """Test service mesh certificates turn on TLS towards upstreams."""
        static = StaticConfigParams(service_mesh_certs=True)

        vs_config, _ = generate(VirtualServerSnapshot(make_vs()), static=static)

        assert vs_config.server.locations[0].proxy_pass == "https://vs_default_cafe_tea"


class TestDelegation:
    """Test routes delegated to VirtualServerRoutes."""

    def test_subroute_locations(self):
        """Test subroutes produce locations proxying to their own upstreams."""
        vs = make_vs(routes=[Route(path="/coffee", route="coffee")])
        snapshot = VirtualServerSnapshot(vs, virtual_server_routes=[make_vsr()])

        vs_config, _ = generate(snapshot)

        location = vs_config.server.locations[0]
        assert location.path == "/coffee/latte"
        assert location.proxy_pass == "http://vs_default_cafe_vsr_default_coffee_latte"
        assert location.is_vsr is True
        assert location.vsr_name == "coffee"
        assert "vs_default_cafe_vsr_default_coffee_latte" in [u.name for u in vs_config.upstreams]

    def test_inherited_settings(self):
        """Test subroutes inherit snippets, error pages and policies of the delegating route."""
        vs = make_vs(
            routes=[
                Route(
                    path="/coffee",
                    route="coffee",
                    location_snippets="add_header X-From vs;",
                    error_pages=[ErrorPage(codes=[404], return_=ErrorPageReturn(body="no coffee"))],
                    policies=[PolicyReference(name="allow")],
                )
            ]
        )
        allow = Policy("allow", "default", AccessControl(allow=["10.0.0.0/8"]))
        snapshot = VirtualServerSnapshot(vs, virtual_server_routes=[make_vsr()], policies={allow.key: allow})

        vs_config, warnings = generate(snapshot, static=StaticConfigParams(enable_snippets=True))

        assert not warnings
        location = vs_config.server.locations[0]
        assert location.snippets == ["add_header X-From vs;"]
        assert [p.name for p in location.error_pages] == ["@error_page_0_0"]
        assert location.allow == ["10.0.0.0/8"]
        assert [p.name for p in vs_config.server.error_page_locations] == ["@error_page_0_0"]

    def test_subroute_overrides(self):
        """Test subroute settings replace inherited ones."""
        vs = make_vs(
            routes=[Route(path="/coffee", route="coffee", policies=[PolicyReference(name="allow")])]
        )
        vsr = make_vsr(
            subroutes=[
                Route(path="/coffee/latte", action=Action(pass_="latte"), policies=[PolicyReference(name="deny")])
            ]
        )
        allow = Policy("allow", "default", AccessControl(allow=["10.0.0.0/8"]))
        deny = Policy("deny", "default", AccessControl(deny=["10.0.0.1"]))
        snapshot = VirtualServerSnapshot(
            vs, virtual_server_routes=[vsr], policies={allow.key: allow, deny.key: deny}
        )

        vs_config, _ = generate(snapshot)

        location = vs_config.server.locations[0]
        assert location.allow == []
        assert location.deny == ["10.0.0.1"]

    def test_indices_unique_across_resources(self):
        """Test split indices continue from the virtual server into its routes."""
        vs = make_vs(
            routes=[
                Route(
                    path="/tea",
                    splits=[Split(weight=50, action=Action(pass_="tea")), Split(weight=50, action=Action(pass_="coffee"))],
                ),
                Route(path="/coffee", route="coffee"),
            ]
        )
        vsr = make_vsr(
            upstreams=[
                Upstream(name="latte", service="latte-svc", port=80),
                Upstream(name="mocha", service="mocha-svc", port=80),
            ],
            subroutes=[
                Route(
                    path="/coffee/latte",
                    splits=[
                        Split(weight=90, action=Action(pass_="latte")),
                        Split(weight=10, action=Action(pass_="mocha")),
                    ],
                )
            ],
        )

        vs_config, _ = generate(VirtualServerSnapshot(vs, virtual_server_routes=[vsr]))

        assert [sc.variable for sc in vs_config.split_clients] == [
            "$vs_default_cafe_splits_0",
            "$vs_default_cafe_splits_1",
        ]
        paths = [loc.path for loc in vs_config.server.locations]
        assert len(paths) == len(set(paths))
        assert vs_config.server.locations[2].proxy_pass == (
            "http://vs_default_cafe_vsr_default_coffee_latte$request_uri"
        )
        assert [irl.path for irl in vs_config.server.internal_redirect_locations] == ["/tea", "/coffee/latte"]


class TestPolicies:
    """Test policies applied during synthesis."""

    def test_fatal_route_policy(self):
        """Test a missing route policy makes its locations return 500."""
        vs = make_vs(
            routes=[Route(path="/tea", action=Action(pass_="tea"), policies=[PolicyReference(name="absent")])]
        )

        vs_config, warnings = generate(VirtualServerSnapshot(vs))

        assert vs_config.server.locations[0].policies_error_return == Return(code=500)
        assert warnings.get(vs.ref) == ["Policy default/absent is missing or invalid"]

    def test_spec_policies_on_server(self):
        """Test spec policies apply to the server."""
        allow = Policy("allow", "default", AccessControl(allow=["10.0.0.0/8"]))
        vs = make_vs(policies=[PolicyReference(name="allow")])

        vs_config, _ = generate(VirtualServerSnapshot(vs, policies={allow.key: allow}))

        assert vs_config.server.allow == ["10.0.0.0/8"]
        assert vs_config.server.locations[0].allow == []

    def test_api_key_never_in_clear_text(self):
        """Test API keys appear only hashed in the document."""
        api_key = Policy("api-key", "default", APIKey(client_secret="keys", supplied_in=SuppliedIn(header=["X-Key"])))
        vs = make_vs(policies=[PolicyReference(name="api-key")])
        secret = Secret("nginx.org/apikey", data={"client-a": b"topsecretvalue"})
        snapshot = VirtualServerSnapshot(
            vs,
            policies={api_key.key: api_key},
            secret_refs={"default/keys": SecretReference(secret)},
        )

        vs_config, warnings = generate(snapshot)

        assert not warnings
        assert vs_config.server.api_key_enabled is True
        assert "$apikey_auth_client_name_default_cafe_api_key" in [m.variable for m in vs_config.maps]
        assert "topsecretvalue" not in vs_config.to_yaml()


class TestDeduplication:
    """Test first-wins deduplication helpers."""

    def test_maps(self):
        """Test maps are deduplicated by source and variable."""
        first = Map(source="$a", variable="$b")
        maps = [first, Map(source="$a", variable="$b"), Map(source="$a", variable="$c")]

        result = remove_duplicate_maps(maps)

        assert len(result) == 2
        assert result[0] is first

    def test_zones(self):
        """Test zones are deduplicated by name."""
        first = LimitReqZone(zone_name="z", key="$a", zone_size="10M", rate="1r/s")
        zones = [first, LimitReqZone(zone_name="z", key="$b", zone_size="1M", rate="5r/s")]

        assert remove_duplicate_limit_req_zones(zones) == [first]

    def test_claim_sets(self):
        """Test claim sets are deduplicated by variable."""
        claim_sets = [AuthJWTClaimSet(variable="$v", claim="a"), AuthJWTClaimSet(variable="$v", claim="b")]

        assert remove_duplicate_auth_jwt_claim_sets(claim_sets) == [AuthJWTClaimSet(variable="$v", claim="a")]
