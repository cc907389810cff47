"""Config provider and the Config Value Resolver.

:class:`ConfigCtx` exposes the current item values to templates through
``ConfigOption`` and friends.  :func:`new_config_context` builds its first
set of values: stored values win, everything else is rendered with the
static functions only.  References to other items render empty at that
stage; dependency-ordered resolution (see :mod:`replconfig.template.resolver`)
fills them in afterwards.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from replconfig.config.models import (
    ConfigGroup,
    ItemValue,
    License,
    LocalRegistry,
    VersionInfo,
)
from replconfig.crypto import AESCipher
from replconfig.template.builder import Builder
from replconfig.template.static_ctx import StaticCtx
from replconfig.template.syntax import TemplateError

logger = logging.getLogger(__name__)

DEFAULT_PROXY_DOMAIN = "proxy.replicated.com"
DEFAULT_REGISTRY_DOMAIN = "registry.replicated.com"


def registry_domains(version_info: Optional[VersionInfo]) -> List[str]:
    """Proxy and registry hostnames, honouring custom domains."""
    proxy = DEFAULT_PROXY_DOMAIN
    registry = DEFAULT_REGISTRY_DOMAIN
    if version_info is not None:
        proxy = version_info.replicated_proxy_domain or proxy
        registry = version_info.replicated_registry_domain or registry
    return [proxy, registry]


def docker_config_json(auths: Mapping[str, str]) -> str:
    """Base64 of a ``.dockerconfigjson`` whose entries carry only ``auth``."""
    payload = {"auths": {host: {"auth": auth} for host, auth in auths.items()}}
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return base64.b64encode(encoded.encode("utf-8")).decode("ascii")


def basic_auth(username: str, password: str) -> str:
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


class ConfigCtx:
    """Template functions over the currently known item values."""

    def __init__(
        self,
        item_values: Optional[Dict[str, ItemValue]] = None,
        local_registry: Optional[LocalRegistry] = None,
        license: Optional[License] = None,
        version_info: Optional[VersionInfo] = None,
    ) -> None:
        self.item_values: Dict[str, ItemValue] = item_values if item_values is not None else {}
        self.local_registry = local_registry or LocalRegistry()
        self.license = license
        self.version_info = version_info

    def _option(self, name: str) -> Optional[str]:
        item = self.item_values.get(name)
        if item is None:
            return None
        return item.resolved()

    # ── ConfigOption family ──────────────────────────────────────────

    def config_option(self, name: str) -> str:
        return self._option(name) or ""

    def config_option_index(self, name: str) -> str:
        return ""

    def config_option_data(self, name: str) -> str:
        value = self._option(name)
        if not value:
            return ""
        try:
            return base64.b64decode(value, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return ""

    def config_option_equals(self, name: str, value: str) -> bool:
        current = self._option(name)
        return current is not None and current == value

    def config_option_not_equals(self, name: str, value: str) -> bool:
        current = self._option(name)
        return current is not None and current != value

    def config_option_filename(self, name: str) -> str:
        item = self.item_values.get(name)
        return item.filename if item is not None else ""

    # ── local registry ───────────────────────────────────────────────

    def local_registry_address(self) -> str:
        reg = self.local_registry
        if not reg.namespace:
            return reg.host
        return f"{reg.host}/{reg.namespace}"

    def has_local_registry(self) -> bool:
        return self.local_registry.host != ""

    def local_registry_image_pull_secret(self) -> str:
        """Pull secret for the local registry, or the vendor registries when there is none."""
        reg = self.local_registry
        if reg.host:
            return docker_config_json({reg.host: basic_auth(reg.username, reg.password)})

        license_id = self.license.spec.license_id if self.license is not None else ""
        auth = basic_auth(license_id, license_id)
        return docker_config_json({domain: auth for domain in registry_domains(self.version_info)})

    def func_map(self) -> Dict[str, Callable[..., Any]]:
        return {
            "ConfigOption": self.config_option,
            "ConfigOptionIndex": self.config_option_index,
            "ConfigOptionData": self.config_option_data,
            "ConfigOptionEquals": self.config_option_equals,
            "ConfigOptionNotEquals": self.config_option_not_equals,
            "ConfigOptionFilename": self.config_option_filename,
            "LocalRegistryAddress": self.local_registry_address,
            "LocalRegistryHost": lambda: self.local_registry.host,
            "LocalRegistryNamespace": lambda: self.local_registry.namespace,
            "HasLocalRegistry": self.has_local_registry,
            "LocalRegistryImagePullSecret": self.local_registry_image_pull_secret,
        }


# ---------------------------------------------------------------------------
# Config Value Resolver
# ---------------------------------------------------------------------------


def _render_best_effort(builder: Builder, name: str, text: str) -> str:
    """Render *text*, substituting ``""`` when the render fails."""
    try:
        return builder.render_template(name, text)
    except TemplateError as exc:
        logger.debug("First pass render of %s failed, using empty value: %s", name, exc)
        return ""


def _decrypt_or_keep(value: str, cipher: Optional[AESCipher]) -> str:
    """Base64-decode and decrypt *value*; return it unchanged on any failure."""
    if cipher is None:
        return value
    try:
        decoded = base64.b64decode(value, validate=True)
        return cipher.decrypt(decoded).decode("utf-8")
    except ValueError as exc:
        logger.debug("Keeping stored password value as is: %s", exc)
        return value


def new_config_context(
    groups: List[ConfigGroup],
    existing_values: Optional[Mapping[str, ItemValue]],
    cipher: Optional[AESCipher] = None,
    local_registry: Optional[LocalRegistry] = None,
    static_ctx: Optional[StaticCtx] = None,
    license: Optional[License] = None,
    version_info: Optional[VersionInfo] = None,
) -> ConfigCtx:
    """Build the initial item values for *groups*.

    For every item in order: a stored entry in *existing_values* is adopted
    as is; otherwise ``default`` and ``value`` are rendered with only the
    static functions available.  Non-empty ``password`` values are then
    decrypted with *cipher*, keeping the original on failure.  Stored values
    for names not in *groups* are carried through.
    """
    builder = Builder([static_ctx or StaticCtx()])
    item_values: Dict[str, ItemValue] = {
        name: ItemValue(value=iv.value, default=iv.default, filename=iv.filename)
        for name, iv in (existing_values or {}).items()
    }

    for group in groups:
        for item in group.items:
            current = item_values.get(item.name)
            if current is None:
                current = ItemValue(
                    value=_render_best_effort(builder, item.name, item.value),
                    default=_render_best_effort(builder, item.name, item.default),
                )
                item_values[item.name] = current

            if item.type == "password" and current.has_value():
                current.value = _decrypt_or_keep(current.value_str(), cipher)

    return ConfigCtx(
        item_values=item_values,
        local_registry=local_registry,
        license=license,
        version_info=version_info,
    )
