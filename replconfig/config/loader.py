"""Config document loading and write-back.

- :func:`load_config`: parse a ``kind: Config`` YAML into a :class:`Config`
- :func:`load_config_values`: parse ``kind: ConfigValues`` into item values
- :func:`load_license`: parse a ``kind: License`` YAML
- :func:`write_config_values`: serialize resolved item values back to YAML,
  re-encrypting password items
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Set

import yaml

from replconfig.config.models import (
    API_VERSION,
    Config,
    ConfigGroup,
    ConfigValue,
    ConfigValues,
    ConfigValuesSpec,
    ItemValue,
    License,
)
from replconfig.crypto import AESCipher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _load_document(path: str | Path, kind: str) -> Dict[str, Any]:
    """Read *path* and check that it holds a single document of *kind*.

    Raises :class:`ValueError` if the document is not a mapping or has a
    different ``kind``.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a {kind} document, got {type(raw).__name__}")
    found = raw.get("kind")
    if found != kind:
        raise ValueError(f"{path}: expected kind {kind}, got {found!r}")
    api_version = raw.get("apiVersion")
    if api_version and api_version != API_VERSION:
        logger.warning("%s: unexpected apiVersion %s", path, api_version)
    return raw


def load_config(path: str | Path) -> Config:
    """Load a ``kind: Config`` document."""
    return Config.model_validate(_load_document(path, "Config"))


def load_config_values(path: str | Path) -> Dict[str, ItemValue]:
    """Load a ``kind: ConfigValues`` document as a name -> :class:`ItemValue` map."""
    doc = ConfigValues.model_validate(_load_document(path, "ConfigValues"))
    return config_values_to_items(doc)


def load_license(path: str | Path) -> License:
    return License.model_validate(_load_document(path, "License"))


def config_values_to_items(doc: ConfigValues) -> Dict[str, ItemValue]:
    return {
        name: ItemValue(value=v.value, default=v.default, filename=v.filename)
        for name, v in doc.spec.values.items()
    }


def password_item_names(groups: Iterable[ConfigGroup]) -> Set[str]:
    return {item.name for group in groups for item in group.items if item.type == "password"}


def items_to_config_values(
    values: Mapping[str, ItemValue],
    name: str = "",
    groups: Optional[Iterable[ConfigGroup]] = None,
    cipher: Optional[AESCipher] = None,
) -> ConfigValues:
    """Build a ``kind: ConfigValues`` document from resolved item values.

    Non-empty values of ``password`` items in *groups* are encrypted with
    *cipher*.  Without a cipher they were never decrypted, so they are
    emitted exactly as stored.
    """
    passwords = password_item_names(groups) if groups is not None and cipher is not None else set()
    entries = {}
    for key, iv in values.items():
        value = iv.value_str()
        if key in passwords and value:
            value = cipher.encrypt_string(value)
        entries[key] = ConfigValue(value=value, default=iv.default_str(), filename=iv.filename)
    metadata = {"name": name} if name else {}
    return ConfigValues(metadata=metadata, spec=ConfigValuesSpec(values=entries))


# ---------------------------------------------------------------------------
# Write-back
# ---------------------------------------------------------------------------

def write_config_values(
    values: Mapping[str, ItemValue],
    path: str | Path,
    name: str = "",
    groups: Optional[Iterable[ConfigGroup]] = None,
    cipher: Optional[AESCipher] = None,
) -> Path:
    """Serialize *values* to a ``kind: ConfigValues`` YAML at *path*.

    Password handling follows :func:`items_to_config_values`.  Empty
    ``default`` / ``filename`` fields are omitted.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    doc = items_to_config_values(values, name=name, groups=groups, cipher=cipher)
    data = doc.model_dump(mode="json", by_alias=True)
    for entry in data["spec"]["values"].values():
        for key in ("default", "filename"):
            if not entry[key]:
                del entry[key]
    if not data["metadata"]:
        del data["metadata"]

    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)

    return path
