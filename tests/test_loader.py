"""Manifest loading tests."""

import pytest

from roadconf_core.errors import PolicyKindError, ResourceError
from roadconf_core.resources import load_manifest_file, load_manifests, load_objects
from roadconf_core.resources.policy import PolicyKind

MANIFESTS = """
apiVersion: k8s.nginx.org/v1
kind: VirtualServer
metadata:
  name: cafe
  namespace: prod
spec:
  host: cafe.example.com
  tls:
    secret: cafe-secret
    redirect:
      enable: true
      basedOn: x-forwarded-proto
  policies:
    - name: rate-limit
  upstreams:
    - name: tea
      service: tea-svc
      port: 80
      lb-method: least_conn
      healthCheck:
        enable: true
        path: /healthz
        statusMatch: "200"
    - name: coffee
      service: coffee-svc
      port: 80
  routes:
    - path: /tea
      matches:
        - conditions:
            - header: x-version
              value: v2
          action:
            pass: coffee
      action:
        pass: tea
    - path: /coffee
      route: coffee
    - path: /split
      splits:
        - weight: 90
          action:
            pass: tea
        - weight: 10
          action:
            proxy:
              upstream: coffee
              rewritePath: /v2
---
apiVersion: k8s.nginx.org/v1
kind: VirtualServerRoute
metadata:
  name: coffee
  namespace: prod
spec:
  host: cafe.example.com
  upstreams:
    - name: latte
      service: latte-svc
      port: 8080
  subroutes:
    - path: /coffee/latte
      action:
        return:
          code: 200
          body: latte
---
apiVersion: k8s.nginx.org/v1
kind: Policy
metadata:
  name: rate-limit
  namespace: prod
spec:
  rateLimit:
    rate: 10r/s
    key: $binary_remote_addr
    zoneSize: 10M
    dryRun: true
"""


class TestLoadManifests:
    """Test loading multi-document YAML."""

    def test_kinds(self):
        """Test each kind lands in its collection."""
        loaded = load_manifests(MANIFESTS)

        assert [vs.name for vs in loaded.virtual_servers] == ["cafe"]
        assert [vsr.name for vsr in loaded.virtual_server_routes] == ["coffee"]
        assert [p.name for p in loaded.policies] == ["rate-limit"]

    def test_virtual_server(self):
        """Test virtual server fields."""
        vs = load_manifests(MANIFESTS).virtual_servers[0]

        assert vs.namespace == "prod"
        assert vs.host == "cafe.example.com"
        assert vs.tls.secret == "cafe-secret"
        assert vs.tls.redirect.enable is True
        assert vs.tls.redirect.based_on == "x-forwarded-proto"
        assert vs.policies[0].name == "rate-limit"

    def test_upstreams(self):
        """Test upstream fields and health checks."""
        tea = load_manifests(MANIFESTS).virtual_servers[0].upstreams[0]

        assert tea.lb_method == "least_conn"
        assert tea.health_check.enable is True
        assert tea.health_check.path == "/healthz"
        assert tea.health_check.status_match == "200"

    def test_routes(self):
        """Test matches, delegation and splits."""
        routes = load_manifests(MANIFESTS).virtual_servers[0].routes

        assert routes[0].matches[0].conditions[0].header == "x-version"
        assert routes[0].matches[0].action.pass_ == "coffee"
        assert routes[0].action.pass_ == "tea"
        assert routes[1].route == "coffee"
        assert [s.weight for s in routes[2].splits] == [90, 10]
        assert routes[2].splits[1].action.proxy.rewrite_path == "/v2"

    def test_subroute_return(self):
        """Test return actions of subroutes."""
        subroute = load_manifests(MANIFESTS).virtual_server_routes[0].subroutes[0]

        assert subroute.action.return_.code == 200
        assert subroute.action.return_.body == "latte"

    def test_policy(self):
        """Test the policy kind and its camelCase fields."""
        policy = load_manifests(MANIFESTS).policy_catalog()["prod/rate-limit"]

        assert policy.kind == PolicyKind.RATE_LIMIT
        assert policy.spec.zone_size == "10M"
        assert policy.spec.dry_run is True

    def test_file(self, tmp_path):
        """Test loading from a file."""
        path = tmp_path / "cafe.yaml"
        path.write_text(MANIFESTS)

        assert len(load_manifest_file(str(path)).virtual_servers) == 1


class TestLoadErrors:
    """Test malformed manifests."""

    def test_default_namespace(self):
        """Test a missing namespace defaults to default."""
        loaded = load_objects([{"kind": "VirtualServer", "metadata": {"name": "cafe"}, "spec": {"host": "a"}}])

        assert loaded.virtual_servers[0].namespace == "default"

    def test_unknown_kind(self):
        """Test unknown kinds are rejected."""
        with pytest.raises(ResourceError):
            load_objects([{"kind": "Ingress", "metadata": {"name": "x"}}])

    def test_missing_name(self):
        """Test manifests need a name."""
        with pytest.raises(ResourceError):
            load_objects([{"kind": "VirtualServer", "metadata": {}}])

    def test_policy_without_kind(self):
        """Test a policy must set one kind."""
        with pytest.raises(PolicyKindError):
            load_objects([{"kind": "Policy", "metadata": {"name": "p"}, "spec": {}}])

    def test_policy_with_two_kinds(self):
        """Test a policy may not set several kinds."""
        spec = {"accessControl": {"allow": ["10.0.0.1"]}, "basicAuth": {"secret": "s"}}

        with pytest.raises(PolicyKindError):
            load_objects([{"kind": "Policy", "metadata": {"name": "p"}, "spec": spec}])

    def test_route_with_two_forms(self):
        """Test a route may not set both an action and splits."""
        spec = {
            "host": "a",
            "routes": [
                {
                    "path": "/",
                    "action": {"pass": "tea"},
                    "splits": [{"weight": 100, "action": {"pass": "tea"}}],
                }
            ],
        }

        with pytest.raises(ResourceError):
            load_objects([{"kind": "VirtualServer", "metadata": {"name": "cafe"}, "spec": spec}])

    def test_match_without_conditions(self):
        """Test matches need conditions."""
        spec = {
            "host": "a",
            "routes": [{"path": "/", "action": {"pass": "tea"}, "matches": [{"action": {"pass": "tea"}}]}],
        }

        with pytest.raises(ResourceError):
            load_objects([{"kind": "VirtualServer", "metadata": {"name": "cafe"}, "spec": spec}])
