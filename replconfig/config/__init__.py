"""Config, ConfigValues and License documents."""

from replconfig.config.loader import (
    config_values_to_items,
    items_to_config_values,
    load_config,
    load_config_values,
    load_license,
    password_item_names,
    write_config_values,
)
from replconfig.config.models import (
    EDITABLE_ITEM_TYPES,
    Config,
    ConfigChildItem,
    ConfigGroup,
    ConfigItem,
    ConfigValue,
    ConfigValues,
    EntitlementField,
    IdentityConfig,
    ItemValue,
    KurlValues,
    License,
    LicenseSpec,
    LocalRegistry,
    VersionInfo,
)

__all__ = [
    "EDITABLE_ITEM_TYPES",
    "Config",
    "ConfigChildItem",
    "ConfigGroup",
    "ConfigItem",
    "ConfigValue",
    "ConfigValues",
    "EntitlementField",
    "IdentityConfig",
    "ItemValue",
    "KurlValues",
    "License",
    "LicenseSpec",
    "LocalRegistry",
    "VersionInfo",
    "config_values_to_items",
    "items_to_config_values",
    "load_config",
    "load_config_values",
    "load_license",
    "password_item_names",
    "write_config_values",
]
