"""Models for the documents and runtime inputs the template engine reads.

YAML documents (``apiVersion: kots.io/v1beta1``) are pydantic models:

- ``Config``: ordered groups of configurable items
- ``ConfigValues``: stored per-item values
- ``License``: license fields and custom entitlements

Everything the engine is handed at runtime by a caller (stored item values,
version metadata, identity settings, installer values, local registry) is a
plain dataclass.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

API_VERSION = "kots.io/v1beta1"

#: Item types a user can edit.  ``""`` counts because the default type is text.
EDITABLE_ITEM_TYPES = frozenset(
    {"", "bool", "file", "password", "select", "select_many", "select_one", "text", "textarea"}
)


def _template_string(value: Any) -> str:
    """Normalise a YAML scalar to template text: null -> '', bools -> 'true'/'false'."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class ConfigChildItem(BaseModel):
    """An option of a ``select_one`` / ``select_many`` item."""

    name: str
    title: str = ""
    recommended: bool = False
    default: str = ""
    value: str = ""

    @field_validator("default", "value", mode="before")
    @classmethod
    def _normalise(cls, value: Any) -> str:
        return _template_string(value)


class ConfigItem(BaseModel):
    """A single configurable item.

    ``default`` and ``value`` are template text and are always strings once
    validated, whatever scalar the YAML held.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str
    title: str = ""
    help_text: str = ""
    type: str = "text"
    default: str = ""
    value: str = ""
    read_only: bool = Field(default=False, alias="readonly")
    hidden: bool = False
    when: str = ""
    required: bool = False
    recommended: bool = False
    items: List[ConfigChildItem] = Field(default_factory=list)

    @field_validator("default", "value", "when", mode="before")
    @classmethod
    def _normalise_template(cls, value: Any) -> str:
        return _template_string(value)

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> str:
        return value or "text"


class ConfigGroup(BaseModel):
    name: str
    title: str = ""
    description: str = ""
    when: str = ""
    items: List[ConfigItem] = Field(default_factory=list)

    @field_validator("when", mode="before")
    @classmethod
    def _normalise_when(cls, value: Any) -> str:
        return _template_string(value)


class ConfigSpec(BaseModel):
    groups: List[ConfigGroup] = Field(default_factory=list)


class Config(BaseModel):
    """``kind: Config`` document."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = "Config"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    spec: ConfigSpec = Field(default_factory=ConfigSpec)


# ---------------------------------------------------------------------------
# ConfigValues
# ---------------------------------------------------------------------------


class ConfigValue(BaseModel):
    default: str = ""
    value: str = ""
    filename: str = ""

    @field_validator("default", "value", mode="before")
    @classmethod
    def _normalise(cls, value: Any) -> str:
        return _template_string(value)


class ConfigValuesSpec(BaseModel):
    values: Dict[str, ConfigValue] = Field(default_factory=dict)


class ConfigValues(BaseModel):
    """``kind: ConfigValues`` document."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = "ConfigValues"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    spec: ConfigValuesSpec = Field(default_factory=ConfigValuesSpec)


# ---------------------------------------------------------------------------
# License
# ---------------------------------------------------------------------------


class EntitlementField(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = ""
    description: str = ""
    value: Any = None
    value_type: str = Field(default="", alias="valueType")
    is_hidden: bool = Field(default=False, alias="isHidden")


class LicenseSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    license_id: str = Field(default="", alias="licenseID")
    license_type: str = Field(default="", alias="licenseType")
    license_sequence: int = Field(default=0, alias="licenseSequence")
    app_slug: str = Field(default="", alias="appSlug")
    channel_id: str = Field(default="", alias="channelID")
    channel_name: str = Field(default="", alias="channelName")
    customer_name: str = Field(default="", alias="customerName")
    endpoint: str = ""
    signature: str = ""
    is_airgap_supported: bool = Field(default=False, alias="isAirgapSupported")
    is_gitops_supported: bool = Field(default=False, alias="isGitOpsSupported")
    is_identity_service_supported: bool = Field(default=False, alias="isIdentityServiceSupported")
    is_geoaxis_supported: bool = Field(default=False, alias="isGeoaxisSupported")
    is_snapshot_supported: bool = Field(default=False, alias="isSnapshotSupported")
    entitlements: Dict[str, EntitlementField] = Field(default_factory=dict)


class License(BaseModel):
    """``kind: License`` document."""

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: str = "License"
    metadata: Dict[str, Any] = Field(default_factory=dict)
    spec: LicenseSpec = Field(default_factory=LicenseSpec)


# ---------------------------------------------------------------------------
# Runtime inputs
# ---------------------------------------------------------------------------


@dataclass
class ItemValue:
    """Current value and default of one config item.

    ``None`` and ``""`` both mean "not set".
    """

    value: Any = None
    default: Any = None
    filename: str = ""

    def has_value(self) -> bool:
        return self.value is not None and self.value != ""

    def has_default(self) -> bool:
        return self.default is not None and self.default != ""

    def value_str(self) -> str:
        return _template_string(self.value) if self.has_value() else ""

    def default_str(self) -> str:
        return _template_string(self.default) if self.has_default() else ""

    def resolved(self) -> str:
        """Value if set, otherwise default."""
        return self.value_str() if self.has_value() else self.default_str()


@dataclass
class LocalRegistry:
    host: str = ""
    namespace: str = ""
    username: str = ""
    password: str = ""


@dataclass
class VersionInfo:
    sequence: int = 0
    cursor: str = ""
    channel_name: str = ""
    version_label: str = ""
    release_notes: str = ""
    is_airgap: bool = False
    replicated_registry_domain: str = ""
    replicated_proxy_domain: str = ""


@dataclass
class IdentityConfig:
    """Identity service settings.

    ``roles`` maps a group ID to the role IDs granted to its members.
    """

    enabled: bool = False
    client_id: str = ""
    client_secret: str = ""
    restricted_groups: List[str] = field(default_factory=list)
    roles: Dict[str, List[str]] = field(default_factory=dict)
    service_name: str = ""


@dataclass
class KurlValues:
    """Installer values keyed by YAML path, e.g. ``Kubernetes.Version``."""

    values: Dict[str, Any] = field(default_factory=dict)

    def get(self, path: str) -> Optional[Any]:
        return self.values.get(path)
