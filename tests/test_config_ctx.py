"""Tests for replconfig.template.config_ctx: ConfigOption functions and first-pass values."""

from __future__ import annotations

import base64
import json

from replconfig.config.models import (
    ConfigGroup,
    ConfigItem,
    ItemValue,
    License,
    LicenseSpec,
    LocalRegistry,
    VersionInfo,
)
from replconfig.crypto import AESCipher
from replconfig.template.builder import Builder
from replconfig.template.config_ctx import ConfigCtx, new_config_context
from replconfig.template.static_ctx import StaticCtx


def _group(*items: ConfigItem) -> ConfigGroup:
    return ConfigGroup(name="main", items=list(items))


def _decode(secret: str) -> dict:
    return json.loads(base64.b64decode(secret))


# ── ConfigOption family ──────────────────────────────────────────────


class TestConfigOption:
    def _ctx(self) -> ConfigCtx:
        return ConfigCtx(
            item_values={
                "host": ItemValue(value="example.com", default="localhost"),
                "port": ItemValue(value="", default="8080"),
                "blob": ItemValue(value=base64.b64encode(b"file body").decode(), filename="body.txt"),
                "empty": ItemValue(),
            }
        )

    def test_value_beats_default(self):
        assert self._ctx().config_option("host") == "example.com"

    def test_default_when_no_value(self):
        assert self._ctx().config_option("port") == "8080"

    def test_missing_is_empty(self):
        assert self._ctx().config_option("nope") == ""

    def test_data_decodes_base64(self):
        assert self._ctx().config_option_data("blob") == "file body"

    def test_data_bad_base64_is_empty(self):
        assert self._ctx().config_option_data("host") == ""

    def test_filename(self):
        ctx = self._ctx()
        assert ctx.config_option_filename("blob") == "body.txt"
        assert ctx.config_option_filename("nope") == ""

    def test_equals(self):
        ctx = self._ctx()
        assert ctx.config_option_equals("port", "8080") is True
        assert ctx.config_option_equals("port", "80") is False
        assert ctx.config_option_equals("nope", "") is False

    def test_not_equals(self):
        ctx = self._ctx()
        assert ctx.config_option_not_equals("port", "80") is True
        assert ctx.config_option_not_equals("port", "8080") is False
        assert ctx.config_option_not_equals("nope", "x") is False

    def test_empty_item_equals_empty_string(self):
        assert self._ctx().config_option_equals("empty", "") is True

    def test_index_is_empty(self):
        assert self._ctx().config_option_index("host") == ""

    def test_from_template(self):
        b = Builder([StaticCtx(), self._ctx()])
        assert b.render_template("t", 'repl{{ ConfigOption "host" | ToUpper }}') == "EXAMPLE.COM"


# ── Local registry ───────────────────────────────────────────────────


class TestLocalRegistry:
    def test_address_with_namespace(self):
        ctx = ConfigCtx(local_registry=LocalRegistry(host="reg.local:5000", namespace="app"))
        assert ctx.local_registry_address() == "reg.local:5000/app"
        assert ctx.has_local_registry() is True

    def test_address_without_namespace(self):
        ctx = ConfigCtx(local_registry=LocalRegistry(host="reg.local"))
        assert ctx.local_registry_address() == "reg.local"

    def test_no_registry(self):
        ctx = ConfigCtx()
        assert ctx.has_local_registry() is False
        assert ctx.local_registry_address() == ""

    def test_pull_secret_for_local_registry(self):
        ctx = ConfigCtx(local_registry=LocalRegistry(host="reg.local", username="user", password="pass"))
        secret = ctx.local_registry_image_pull_secret()
        assert _decode(secret) == {"auths": {"reg.local": {"auth": base64.b64encode(b"user:pass").decode()}}}

    def test_pull_secret_without_license(self):
        secret = ConfigCtx().local_registry_image_pull_secret()
        raw = base64.b64decode(secret).decode()
        assert raw == (
            '{"auths":{"proxy.replicated.com":{"auth":"Og=="},'
            '"registry.replicated.com":{"auth":"Og=="}}}'
        )

    def test_pull_secret_with_license_and_custom_domains(self):
        lic = License(spec=LicenseSpec(license_id="abc"))
        info = VersionInfo(replicated_proxy_domain="proxy.vendor.io", replicated_registry_domain="registry.vendor.io")
        secret = ConfigCtx(license=lic, version_info=info).local_registry_image_pull_secret()
        auth = base64.b64encode(b"abc:abc").decode()
        assert _decode(secret) == {
            "auths": {"proxy.vendor.io": {"auth": auth}, "registry.vendor.io": {"auth": auth}}
        }


# ── new_config_context ───────────────────────────────────────────────


class TestNewConfigContext:
    def test_renders_static_templates(self):
        group = _group(ConfigItem(name="a", default='repl{{ ToUpper "x" }}', value="plain"))
        ctx = new_config_context([group], {})
        assert ctx.item_values["a"] == ItemValue(value="plain", default="X")

    def test_references_render_empty_on_first_pass(self):
        group = _group(
            ConfigItem(name="a", value="one"),
            ConfigItem(name="b", value='repl{{ ConfigOption "a" }}'),
        )
        ctx = new_config_context([group], {})
        assert ctx.item_values["b"].value == ""

    def test_stored_values_are_adopted(self):
        group = _group(ConfigItem(name="a", default="d", value="v"))
        stored = {"a": ItemValue(value="stored"), "extra": ItemValue(value="kept")}
        ctx = new_config_context([group], stored)
        assert ctx.item_values["a"].value == "stored"
        assert ctx.item_values["extra"].value == "kept"

    def test_stored_values_are_copied(self):
        stored = {"a": ItemValue(value="stored")}
        ctx = new_config_context([_group(ConfigItem(name="a"))], stored)
        ctx.item_values["a"].value = "changed"
        assert stored["a"].value == "stored"

    def test_password_is_decrypted(self):
        cipher = AESCipher.generate()
        group = _group(ConfigItem(name="pw", type="password"))
        stored = {"pw": ItemValue(value=cipher.encrypt_string("s3cret"))}
        ctx = new_config_context([group], stored, cipher)
        assert ctx.item_values["pw"].value == "s3cret"

    def test_password_that_does_not_decrypt_is_kept(self):
        cipher = AESCipher.generate()
        group = _group(ConfigItem(name="pw", type="password"))
        ctx = new_config_context([group], {"pw": ItemValue(value="plaintext")}, cipher)
        assert ctx.item_values["pw"].value == "plaintext"

    def test_password_without_cipher_is_kept(self):
        group = _group(ConfigItem(name="pw", type="password"))
        ctx = new_config_context([group], {"pw": ItemValue(value="abc")})
        assert ctx.item_values["pw"].value == "abc"
