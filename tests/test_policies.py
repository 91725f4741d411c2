"""Policy resolution tests."""

import hashlib

from roadconf_core.diagnostics import Warnings
from roadconf_core.document.config import Parameter, Return
from roadconf_core.policy import (
    ROUTE_CONTEXT,
    SPEC_CONTEXT,
    BundleValidator,
    OIDCState,
    OwnerDetails,
    PolicyOptions,
    PolicyResolver,
)
from roadconf_core.policy.auth import generate_api_key_client_map
from roadconf_core.resources.policy import (
    OIDC,
    WAF,
    AccessControl,
    APIKey,
    BasicAuth,
    EgressMTLS,
    IngressMTLS,
    JWTAuth,
    Policy,
    SecurityLog,
    SuppliedIn,
)
from roadconf_core.resources.secrets import Secret, SecretReference
from roadconf_core.resources.virtualserver import PolicyReference, ResourceRef

OWNER = OwnerDetails(owner=ResourceRef("VirtualServer", "default", "cafe"), vs_namespace="default", vs_name="cafe")


def catalog(*policies):
    return {p.key: p for p in policies}


def refs(*names):
    return [PolicyReference(name=name) for name in names]


def make_resolver(bundle_path="/nonexistent", oidc_state=None):
    warnings = Warnings()
    return PolicyResolver(warnings, BundleValidator(bundle_path), oidc_state=oidc_state), warnings


class TestResolver:
    """Test reference resolution."""

    def test_missing_policy_is_fatal(self):
        """Test a missing policy yields a 500 and one warning."""
        resolver, warnings = make_resolver()

        cfg = resolver.resolve(OWNER, refs("absent"), {}, SPEC_CONTEXT, "", PolicyOptions())

        assert cfg.is_fatal
        assert cfg.error_return == Return(code=500)
        assert warnings.all() == ["Policy default/absent is missing or invalid"]

    def test_fatal_drops_earlier_policies(self):
        """Test a fatal context carries nothing but the error return."""
        resolver, _ = make_resolver()
        allow = Policy("allow", "default", AccessControl(allow=["10.0.0.0/8"]))

        cfg = resolver.resolve(OWNER, refs("allow", "absent"), catalog(allow), SPEC_CONTEXT, "", PolicyOptions())

        assert cfg.is_fatal
        assert cfg.allow == []

    def test_reference_namespace(self):
        """Test references default to the owner's namespace."""
        resolver, warnings = make_resolver()
        allow = Policy("allow", "shared", AccessControl(allow=["10.0.0.1"]))

        cfg = resolver.resolve(
            OWNER,
            [PolicyReference(name="allow", namespace="shared")],
            catalog(allow),
            SPEC_CONTEXT,
            "",
            PolicyOptions(),
        )

        assert cfg.allow == ["10.0.0.1"]
        assert not warnings


class TestAccessControl:
    """Test allow and deny lists."""

    def test_lists_accumulate(self):
        """Test lists from several policies are concatenated."""
        resolver, _ = make_resolver()
        first = Policy("a", "default", AccessControl(deny=["10.0.0.1"]))
        second = Policy("b", "default", AccessControl(deny=["10.0.0.2"]))

        cfg = resolver.resolve(OWNER, refs("a", "b"), catalog(first, second), SPEC_CONTEXT, "", PolicyOptions())

        assert cfg.deny == ["10.0.0.1", "10.0.0.2"]

    def test_allow_overrides_deny(self):
        """Test mixing allow and deny rules is reported."""
        resolver, warnings = make_resolver()
        deny = Policy("deny", "default", AccessControl(deny=["10.0.0.1"]))
        allow = Policy("allow", "default", AccessControl(allow=["10.0.0.2"]))

        cfg = resolver.resolve(OWNER, refs("deny", "allow"), catalog(deny, allow), SPEC_CONTEXT, "", PolicyOptions())

        assert not cfg.is_fatal
        assert warnings.all() == [
            "AccessControl policy (or policies) with deny rules is overridden by policy (or policies) with allow rules"
        ]


class TestJWT:
    """Test JWT policies."""

    def test_secret(self):
        """Test a key secret is referenced by path."""
        resolver, _ = make_resolver()
        jwt = Policy("jwt", "default", JWTAuth(realm="cafe", secret="jwk", token="$http_token"))
        options = PolicyOptions(
            secret_refs={"default/jwk": SecretReference(Secret("nginx.org/jwk"), path="/etc/nginx/secrets/default-jwk")}
        )

        cfg = resolver.resolve(OWNER, refs("jwt"), catalog(jwt), SPEC_CONTEXT, "", options)

        assert cfg.jwt.auth.secret == "/etc/nginx/secrets/default-jwk"
        assert cfg.jwt.auth.realm == "cafe"
        assert cfg.jwt.jwks_enabled is False

    def test_jwks_uri(self):
        """Test a remote key set is split into URL parts."""
        resolver, _ = make_resolver()
        jwt = Policy("jwt", "default", JWTAuth(jwks_uri="https://idp.example.com:8443/keys", key_cache="1h"))

        cfg = resolver.resolve(OWNER, refs("jwt"), catalog(jwt), SPEC_CONTEXT, "", PolicyOptions())

        assert cfg.jwt.jwks_enabled is True
        assert cfg.jwt.auth.key == "default/jwt"
        assert cfg.jwt.auth.jwks_uri.jwks_host == "idp.example.com"
        assert cfg.jwt.auth.jwks_uri.jwks_port == "8443"
        assert cfg.jwt.auth.key_cache == "1h"

    def test_wrong_secret_type_is_fatal(self):
        """Test a secret of the wrong type is fatal."""
        resolver, warnings = make_resolver()
        jwt = Policy("jwt", "default", JWTAuth(secret="jwk"))
        options = PolicyOptions(secret_refs={"default/jwk": SecretReference(Secret("kubernetes.io/tls"), path="/x")})

        cfg = resolver.resolve(OWNER, refs("jwt"), catalog(jwt), SPEC_CONTEXT, "", options)

        assert cfg.is_fatal
        assert warnings.all() == [
            "JWT policy default/jwt references a secret default/jwk of a wrong type "
            "'kubernetes.io/tls', must be 'nginx.org/jwk'"
        ]

    def test_second_policy_ignored(self):
        """Test a second JWT policy in one context is ignored."""
        resolver, warnings = make_resolver()
        first = Policy("one", "default", JWTAuth(jwks_uri="https://idp.example.com/keys"))
        second = Policy("two", "default", JWTAuth(jwks_uri="https://other.example.com/keys"))

        cfg = resolver.resolve(OWNER, refs("one", "two"), catalog(first, second), SPEC_CONTEXT, "", PolicyOptions())

        assert cfg.jwt.auth.key == "default/one"
        assert len(warnings) == 1


class TestBasicAuth:
    """Test basic auth policies."""

    def test_secret_path(self):
        """Test the htpasswd secret is referenced by path."""
        resolver, _ = make_resolver()
        basic = Policy("basic", "default", BasicAuth(secret="users", realm="cafe"))
        options = PolicyOptions(
            secret_refs={"default/users": SecretReference(Secret("nginx.org/htpasswd"), path="/etc/nginx/secrets/u")}
        )

        cfg = resolver.resolve(OWNER, refs("basic"), catalog(basic), SPEC_CONTEXT, "", options)

        assert cfg.basic_auth.secret == "/etc/nginx/secrets/u"
        assert cfg.basic_auth.realm == "cafe"

    def test_missing_secret_is_fatal(self):
        """Test an absent secret is fatal."""
        resolver, warnings = make_resolver()
        basic = Policy("basic", "default", BasicAuth(secret="users"))

        cfg = resolver.resolve(OWNER, refs("basic"), catalog(basic), SPEC_CONTEXT, "", PolicyOptions())

        assert cfg.is_fatal
        assert warnings.all() == [
            "Basic Auth policy default/basic references an invalid secret default/users: secret default/users not found"
        ]


class TestAPIKey:
    """Test API key policies."""

    def make_options(self):
        secret = Secret("nginx.org/apikey", data={"client-b": b"password-b", "client-a": b"password-a"})
        return PolicyOptions(secret_refs={"default/keys": SecretReference(secret, path="")})

    def test_keys_hashed(self):
        """Test keys are replaced by SHA-256 digests, ordered by client."""
        resolver, _ = make_resolver()
        api_key = Policy("api-key", "default", APIKey(client_secret="keys", supplied_in=SuppliedIn(header=["X-Key"])))

        cfg = resolver.resolve(OWNER, refs("api-key"), catalog(api_key), SPEC_CONTEXT, "", self.make_options())

        assert [c.client_id for c in cfg.api_key.clients] == ["client-a", "client-b"]
        assert cfg.api_key.clients[0].hashed_key == hashlib.sha256(b"password-a").hexdigest()
        assert cfg.api_key.key.map_name == "apikey_auth_client_name_default_cafe_api_key"
        assert cfg.api_key.key.header == ["X-Key"]
        assert cfg.api_key.enabled is True

    def test_client_map(self):
        """Test the client map carries hashes and never the keys."""
        resolver, _ = make_resolver()
        api_key = Policy("api-key", "default", APIKey(client_secret="keys"))
        cfg = resolver.resolve(OWNER, refs("api-key"), catalog(api_key), SPEC_CONTEXT, "", self.make_options())

        m = generate_api_key_client_map(cfg.api_key.key.map_name, cfg.api_key.clients)

        assert m.source == "$apikey_auth_token"
        assert m.variable == "$apikey_auth_client_name_default_cafe_api_key"
        assert m.parameters[0] == Parameter(value="default", result='""')
        assert m.parameters[1].result == '"client-a"'
        assert all("password" not in p.value for p in m.parameters)

    def test_second_policy_is_fatal(self):
        """Test two API key policies in one context are fatal."""
        resolver, _ = make_resolver()
        first = Policy("one", "default", APIKey(client_secret="keys"))
        second = Policy("two", "default", APIKey(client_secret="keys"))

        cfg = resolver.resolve(OWNER, refs("one", "two"), catalog(first, second), SPEC_CONTEXT, "", self.make_options())

        assert cfg.is_fatal


class TestMTLS:
    """Test ingress and egress mutual TLS policies."""

    def ca_options(self, data=None, path="/etc/nginx/secrets/default-ca"):
        return PolicyOptions(
            tls=True,
            secret_refs={"default/ca": SecretReference(Secret("nginx.org/ca", data=data or {}), path=path)},
        )

    def test_ingress(self):
        """Test client verification defaults."""
        resolver, _ = make_resolver()
        mtls = Policy("mtls", "default", IngressMTLS(client_cert_secret="ca"))

        cfg = resolver.resolve(OWNER, refs("mtls"), catalog(mtls), SPEC_CONTEXT, "", self.ca_options())

        assert cfg.ingress_mtls.client_cert == "/etc/nginx/secrets/default-ca"
        assert cfg.ingress_mtls.verify_client == "on"
        assert cfg.ingress_mtls.verify_depth == 1
        assert cfg.ingress_mtls.client_crl == ""

    def test_ingress_needs_tls(self):
        """Test client verification requires TLS termination."""
        resolver, warnings = make_resolver()
        mtls = Policy("mtls", "default", IngressMTLS(client_cert_secret="ca"))
        options = self.ca_options()
        options.tls = False

        cfg = resolver.resolve(OWNER, refs("mtls"), catalog(mtls), SPEC_CONTEXT, "", options)

        assert cfg.is_fatal
        assert warnings.all() == ["TLS must be enabled in VirtualServer for IngressMTLS policy default/mtls"]

    def test_ingress_spec_only(self):
        """Test client verification is rejected on routes."""
        resolver, _ = make_resolver()
        mtls = Policy("mtls", "default", IngressMTLS(client_cert_secret="ca"))

        cfg = resolver.resolve(OWNER, refs("mtls"), catalog(mtls), ROUTE_CONTEXT, "/tea", self.ca_options())

        assert cfg.is_fatal

    def test_crl_from_secret(self):
        """Test the revocation list path comes from the CA secret."""
        resolver, _ = make_resolver()
        mtls = Policy("mtls", "default", IngressMTLS(client_cert_secret="ca"))
        options = self.ca_options(data={"ca.crl": b"crl"}, path="/s/ca.crt /s/ca.crl")

        cfg = resolver.resolve(OWNER, refs("mtls"), catalog(mtls), SPEC_CONTEXT, "", options)

        assert cfg.ingress_mtls.client_cert == "/s/ca.crt"
        assert cfg.ingress_mtls.client_crl == "/s/ca.crl"

    def test_crl_file_name_wins(self):
        """Test an explicit revocation list file takes precedence with a warning."""
        resolver, warnings = make_resolver()
        mtls = Policy("mtls", "default", IngressMTLS(client_cert_secret="ca", crl_file_name="ca.crl"))
        options = self.ca_options(data={"ca.crl": b"crl"}, path="/s/ca.crt /s/ca.crl")

        cfg = resolver.resolve(OWNER, refs("mtls"), catalog(mtls), SPEC_CONTEXT, "", options)

        assert cfg.ingress_mtls.client_crl == "/etc/nginx/secrets/ca.crl"
        assert len(warnings) == 1

    def test_egress(self):
        """Test upstream TLS settings and defaults."""
        resolver, _ = make_resolver()
        egress = Policy("egress", "default", EgressMTLS(tls_secret="client", verify_server=True, trusted_cert_secret="ca"))
        options = self.ca_options()
        options.secret_refs["default/client"] = SecretReference(Secret("kubernetes.io/tls"), path="/s/client")

        cfg = resolver.resolve(OWNER, refs("egress"), catalog(egress), ROUTE_CONTEXT, "/tea", options)

        assert cfg.egress_mtls.certificate == "/s/client"
        assert cfg.egress_mtls.certificate_key == "/s/client"
        assert cfg.egress_mtls.trusted_cert == "/etc/nginx/secrets/default-ca"
        assert cfg.egress_mtls.verify_server is True
        assert cfg.egress_mtls.protocols == "TLSv1 TLSv1.1 TLSv1.2"
        assert cfg.egress_mtls.ssl_name == "$proxy_host"


class TestOIDC:
    """Test the single OIDC slot."""

    def make_oidc(self, client_secret="oidc-secret", pkce=False):
        return OIDC(
            auth_endpoint="https://idp.example.com/auth",
            token_endpoint="https://idp.example.com/token",
            jwks_uri="https://idp.example.com/certs",
            client_id="cafe",
            client_secret=client_secret,
            pkce_enable=pkce,
        )

    def make_options(self):
        secret = Secret("nginx.org/oidc", data={"client-secret": b"s3cret"})
        return PolicyOptions(secret_refs={"default/oidc-secret": SecretReference(secret)})

    def test_first_policy_claims_slot(self):
        """Test the first OIDC policy fills the shared state."""
        state = OIDCState()
        resolver, _ = make_resolver(oidc_state=state)
        oidc = Policy("oidc", "default", self.make_oidc())

        cfg = resolver.resolve(OWNER, refs("oidc"), catalog(oidc), SPEC_CONTEXT, "", self.make_options())

        assert cfg.oidc is True
        assert state.key == "default/oidc"
        assert state.oidc.client_secret == "s3cret"
        assert state.oidc.scope == "openid"
        assert state.oidc.redirect_uri == "/_codexch"

    def test_same_policy_reused(self):
        """Test the same policy may be referenced again in another context."""
        state = OIDCState()
        resolver, warnings = make_resolver(oidc_state=state)
        oidc = Policy("oidc", "default", self.make_oidc())

        resolver.resolve(OWNER, refs("oidc"), catalog(oidc), SPEC_CONTEXT, "", self.make_options())
        cfg = resolver.resolve(OWNER, refs("oidc"), catalog(oidc), ROUTE_CONTEXT, "/tea", self.make_options())

        assert cfg.oidc is True
        assert not warnings

    def test_different_policy_conflicts(self):
        """Test a second OIDC policy in the same tree is fatal."""
        state = OIDCState()
        resolver, warnings = make_resolver(oidc_state=state)
        first = Policy("oidc", "default", self.make_oidc())
        second = Policy("other", "default", self.make_oidc())
        policies = catalog(first, second)

        resolver.resolve(OWNER, refs("oidc"), policies, SPEC_CONTEXT, "", self.make_options())
        cfg = resolver.resolve(OWNER, refs("other"), policies, ROUTE_CONTEXT, "/tea", self.make_options())

        assert cfg.is_fatal
        assert warnings.all() == [
            "Only one oidc policy is allowed in a VirtualServer and its VirtualServerRoutes. "
            "Can't use default/other. Use default/oidc"
        ]

    def test_secret_required_without_pkce(self):
        """Test a client secret is required unless PKCE is enabled."""
        resolver, _ = make_resolver()
        oidc = Policy("oidc", "default", self.make_oidc(client_secret="absent"))

        assert resolver.resolve(OWNER, refs("oidc"), catalog(oidc), SPEC_CONTEXT, "", PolicyOptions()).is_fatal

    def test_secret_not_utf8(self):
        """Test a client secret that is not valid UTF-8 fails the context."""
        state = OIDCState()
        resolver, warnings = make_resolver(oidc_state=state)
        oidc = Policy("oidc", "default", self.make_oidc())
        secret = Secret("nginx.org/oidc", data={"client-secret": b"\xff\xfe"})
        options = PolicyOptions(secret_refs={"default/oidc-secret": SecretReference(secret)})

        cfg = resolver.resolve(OWNER, refs("oidc"), catalog(oidc), SPEC_CONTEXT, "", options)

        assert cfg.is_fatal
        assert state.oidc is None
        assert warnings.all() == [
            "OIDC policy default/oidc references an invalid secret default/oidc-secret: "
            "client-secret is not valid UTF-8"
        ]

    def test_pkce_without_secret(self):
        """Test PKCE works without a client secret."""
        state = OIDCState()
        resolver, _ = make_resolver(oidc_state=state)
        oidc = Policy("oidc", "default", self.make_oidc(client_secret="", pkce=True))

        cfg = resolver.resolve(OWNER, refs("oidc"), catalog(oidc), SPEC_CONTEXT, "", PolicyOptions())

        assert cfg.oidc is True
        assert state.oidc.pkce_enable is True
        assert state.oidc.client_secret == ""


class TestWAF:
    """Test firewall policies."""

    def test_policy_and_log(self):
        """Test firewall policy and log configuration paths."""
        resolver, _ = make_resolver()
        waf = Policy(
            "waf",
            "default",
            WAF(
                enable=True,
                ap_policy="dataguard",
                security_logs=[SecurityLog(enable=True, ap_log_conf="logconf", log_dest="stderr")],
            ),
        )
        options = PolicyOptions(
            waf_policies={"default/dataguard": "/etc/waf/dataguard.json"},
            waf_log_confs={"default/logconf": "/etc/waf/logconf.json"},
        )

        cfg = resolver.resolve(OWNER, refs("waf"), catalog(waf), SPEC_CONTEXT, "", options)

        assert cfg.waf.enable == "on"
        assert cfg.waf.ap_policy == "/etc/waf/dataguard.json"
        assert cfg.waf.ap_security_log_enable is True
        assert cfg.waf.ap_log_conf == ["/etc/waf/logconf.json stderr"]

    def test_bundle(self, tmp_path):
        """Test bundles are resolved under the bundle directory."""
        (tmp_path / "policy.tgz").write_bytes(b"bundle")
        resolver, _ = make_resolver(bundle_path=str(tmp_path))
        waf = Policy("waf", "default", WAF(enable=True, ap_bundle="policy.tgz"))

        cfg = resolver.resolve(OWNER, refs("waf"), catalog(waf), SPEC_CONTEXT, "", PolicyOptions())

        assert cfg.waf.ap_bundle == str(tmp_path / "policy.tgz")

    def test_missing_bundle_is_fatal(self, tmp_path):
        """Test an inaccessible bundle is fatal."""
        resolver, warnings = make_resolver(bundle_path=str(tmp_path))
        waf = Policy("waf", "default", WAF(enable=True, ap_bundle="absent.tgz"))

        cfg = resolver.resolve(OWNER, refs("waf"), catalog(waf), SPEC_CONTEXT, "", PolicyOptions())

        assert cfg.is_fatal
        assert warnings.all() == [
            "WAF policy default/waf references an invalid or non-existing App Protect bundle absent.tgz"
        ]

    def test_deprecated_security_log(self):
        """Test the single security log is used when the list is empty."""
        resolver, _ = make_resolver()
        waf = Policy(
            "waf",
            "default",
            WAF(enable=True, security_log=SecurityLog(enable=True, ap_log_conf="logconf")),
        )
        options = PolicyOptions(waf_log_confs={"default/logconf": "/etc/waf/logconf.json"})

        cfg = resolver.resolve(OWNER, refs("waf"), catalog(waf), SPEC_CONTEXT, "", options)

        assert cfg.waf.ap_log_conf == ["/etc/waf/logconf.json syslog:server=localhost:514"]
