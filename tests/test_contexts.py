"""Tests for the license, version, identity and installer providers."""

from __future__ import annotations

import base64

from replconfig.config.models import (
    EntitlementField,
    IdentityConfig,
    KurlValues,
    License,
    LicenseSpec,
    VersionInfo,
)
from replconfig.template.builder import Builder
from replconfig.template.identity_ctx import IdentityCtx
from replconfig.template.kurl_ctx import KurlCtx
from replconfig.template.license_ctx import LicenseCtx
from replconfig.template.version_ctx import VersionCtx


def _license(**spec) -> License:
    return License(spec=LicenseSpec(**spec))


# ── License ──────────────────────────────────────────────────────────


class TestLicenseCtx:
    def test_docker_cfg_without_license(self):
        raw = base64.b64decode(LicenseCtx().license_docker_cfg()).decode()
        assert raw == (
            '{"auths":{"proxy.replicated.com":{"auth":"Og=="},'
            '"registry.replicated.com":{"auth":"Og=="}}}'
        )

    def test_docker_cfg_with_license(self):
        raw = base64.b64decode(LicenseCtx(_license(license_id="abcdef")).license_docker_cfg()).decode()
        auth = base64.b64encode(b"abcdef:abcdef").decode()
        assert raw == (
            '{"auths":{"proxy.replicated.com":{"auth":"' + auth + '"},'
            '"registry.replicated.com":{"auth":"' + auth + '"}}}'
        )

    def test_docker_cfg_custom_domains(self):
        info = VersionInfo(replicated_proxy_domain="p.example.com")
        raw = base64.b64decode(LicenseCtx(None, info).license_docker_cfg()).decode()
        assert '"p.example.com"' in raw
        assert '"registry.replicated.com"' in raw
        assert "proxy.replicated.com" not in raw

    def test_builtin_fields(self):
        ctx = LicenseCtx(_license(license_id="id1", license_sequence=7, is_snapshot_supported=True))
        assert ctx.license_field_value("licenseID") == "id1"
        assert ctx.license_field_value("licenseSequence") == "7"
        assert ctx.license_field_value("isSnapshotSupported") == "true"

    def test_entitlements(self):
        lic = _license(entitlements={"seats": EntitlementField(value=25), "tier": EntitlementField(value="gold")})
        ctx = LicenseCtx(lic)
        assert ctx.license_field_value("seats") == "25"
        assert ctx.license_field_value("tier") == "gold"
        assert ctx.license_field_value("unknown") == ""

    def test_builtin_shadows_entitlement(self):
        lic = _license(app_slug="real", entitlements={"appSlug": EntitlementField(value="fake")})
        assert LicenseCtx(lic).license_field_value("appSlug") == "real"

    def test_no_license(self):
        assert LicenseCtx().license_field_value("licenseID") == ""

    def test_from_template(self):
        b = Builder([LicenseCtx(_license(customer_name="Acme"))])
        assert b.render_template("t", '{{repl LicenseFieldValue "customerName" }}') == "Acme"


# ── Version ──────────────────────────────────────────────────────────


class TestVersionCtx:
    def test_values(self):
        info = VersionInfo(
            sequence=3,
            cursor="12",
            channel_name="Stable",
            version_label="1.0.1",
            release_notes="fixes",
            is_airgap=True,
        )
        b = Builder([VersionCtx(info)])
        out = b.render_template(
            "t",
            "{{repl Sequence }} {{repl Cursor }} {{repl ChannelName }} {{repl VersionLabel }} "
            "{{repl ReleaseNotes }} {{repl IsAirgap }}",
        )
        assert out == "3 12 Stable 1.0.1 fixes true"

    def test_zero_values(self):
        b = Builder([VersionCtx()])
        assert b.render_template("t", "{{repl Sequence }}|{{repl Cursor }}|{{repl IsAirgap }}") == "0||false"


# ── Identity ─────────────────────────────────────────────────────────


class TestIdentityCtx:
    def test_values(self):
        ctx = IdentityCtx(
            IdentityConfig(
                enabled=True,
                client_id="cid",
                client_secret="sec",
                restricted_groups=["admins"],
                roles={"admins": ["cluster-admin"]},
                service_name="app-dex",
            )
        )
        assert ctx.enabled() is True
        assert ctx.client_id() == "cid"
        assert ctx.client_secret() == "sec"
        assert ctx.restricted_groups() == ["admins"]
        assert ctx.roles() == {"admins": ["cluster-admin"]}
        assert ctx.service_name() == "app-dex"

    def test_zero_values(self):
        ctx = IdentityCtx()
        assert ctx.enabled() is False
        assert ctx.restricted_groups() == []
        assert ctx.roles() == {}
        assert ctx.service_name() == ""

    def test_template_names(self):
        names = set(IdentityCtx().func_map())
        assert names == {
            "IdentityServiceEnabled",
            "IdentityServiceClientID",
            "IdentityServiceClientSecret",
            "IdentityServiceRestrictedGroups",
            "IdentityServiceRoles",
            "IdentityServiceName",
        }


# ── kURL ─────────────────────────────────────────────────────────────


class TestKurlCtx:
    VALUES = KurlValues(
        values={
            "Kubernetes.Version": "1.29.0",
            "Kubernetes.HACluster": True,
            "Velero.Port": 8085,
        }
    )

    def test_typed_lookups(self):
        ctx = KurlCtx(self.VALUES)
        assert ctx.kurl_string("Kubernetes.Version") == "1.29.0"
        assert ctx.kurl_bool("Kubernetes.HACluster") is True
        assert ctx.kurl_int("Velero.Port") == 8085

    def test_wrong_type_is_zero(self):
        ctx = KurlCtx(self.VALUES)
        assert ctx.kurl_int("Kubernetes.HACluster") == 0
        assert ctx.kurl_bool("Velero.Port") is False
        assert ctx.kurl_string("Velero.Port") == ""

    def test_option_formats_any_type(self):
        ctx = KurlCtx(self.VALUES)
        assert ctx.kurl_option("Velero.Port") == "8085"
        assert ctx.kurl_option("Missing.Path") == ""

    def test_all(self):
        assert "Velero.Port: 8085" in KurlCtx(self.VALUES).kurl_all()
        assert KurlCtx().kurl_all() == ""

    def test_no_values(self):
        ctx = KurlCtx()
        assert ctx.kurl_string("Kubernetes.Version") == ""
        assert ctx.kurl_int("Velero.Port") == 0
