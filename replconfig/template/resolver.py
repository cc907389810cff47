"""Dependency-ordered resolution of config values and document rendering.

:func:`resolve_config_values` is the full pass: it seeds values with
:func:`new_config_context`, then walks the dependency graph head nodes
first, rendering each item with every provider registered so that an item
always sees the final values of the items it references.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from replconfig.config.models import (
    EDITABLE_ITEM_TYPES,
    ConfigGroup,
    ConfigItem,
    IdentityConfig,
    ItemValue,
    KurlValues,
    License,
    LocalRegistry,
    VersionInfo,
)
from replconfig.crypto import AESCipher
from replconfig.template.builder import Builder
from replconfig.template.config_ctx import ConfigCtx, new_config_context
from replconfig.template.depgraph import DepGraph
from replconfig.template.identity_ctx import IdentityCtx
from replconfig.template.kurl_ctx import KurlCtx
from replconfig.template.license_ctx import LicenseCtx
from replconfig.template.static_ctx import StaticCtx
from replconfig.template.syntax import TemplateError
from replconfig.template.version_ctx import VersionCtx

logger = logging.getLogger(__name__)


def is_read_only(item: ConfigItem) -> bool:
    """True when users cannot edit *item* (flagged read-only, or e.g. a label)."""
    return item.read_only or item.type not in EDITABLE_ITEM_TYPES


def new_builder(
    config_ctx: Optional[ConfigCtx] = None,
    *,
    static_ctx: Optional[StaticCtx] = None,
    license: Optional[License] = None,
    version_info: Optional[VersionInfo] = None,
    identity: Optional[IdentityConfig] = None,
    kurl: Optional[KurlValues] = None,
) -> Builder:
    """Builder with every provider: static, license, version, identity, kurl, config."""
    builder = Builder()
    builder.add_ctx(static_ctx or StaticCtx())
    builder.add_ctx(LicenseCtx(license, version_info))
    builder.add_ctx(VersionCtx(version_info))
    builder.add_ctx(IdentityCtx(identity))
    builder.add_ctx(KurlCtx(kurl))
    if config_ctx is not None:
        builder.add_ctx(config_ctx)
    return builder


def _render_or_empty(builder: Builder, name: str, text: str) -> str:
    try:
        return builder.render_template(name, text)
    except TemplateError as exc:
        logger.warning("Failed to render config item %s: %s", name, exc)
        return ""


def resolve_config_values(
    groups: List[ConfigGroup],
    existing_values: Optional[Mapping[str, ItemValue]],
    cipher: Optional[AESCipher] = None,
    *,
    license: Optional[License] = None,
    version_info: Optional[VersionInfo] = None,
    identity: Optional[IdentityConfig] = None,
    kurl: Optional[KurlValues] = None,
    local_registry: Optional[LocalRegistry] = None,
    static_ctx: Optional[StaticCtx] = None,
) -> ConfigCtx:
    """Resolve every item of *groups* in dependency order.

    Per item: read-only items are always recomputed from their templates;
    editable items with a stored value keep it and only recompute their
    default; anything else recomputes both.  Stored values for names that
    are not items are left as they are.

    Raises :class:`~replconfig.template.depgraph.CircularDependencyError`
    when items reference each other in a cycle.
    """
    existing_values = existing_values or {}
    static_ctx = static_ctx or StaticCtx()
    config_ctx = new_config_context(
        groups,
        existing_values,
        cipher,
        local_registry=local_registry,
        static_ctx=static_ctx,
        license=license,
        version_info=version_info,
    )
    builder = new_builder(
        config_ctx,
        static_ctx=static_ctx,
        license=license,
        version_info=version_info,
        identity=identity,
        kurl=kurl,
    )

    items: Dict[str, ConfigItem] = {item.name: item for group in groups for item in group.items}
    graph = DepGraph()
    graph.parse_config_groups(groups)

    heads = graph.get_head_nodes()
    while heads:
        for name in heads:
            item = items[name]
            current = config_ctx.item_values.get(name) or ItemValue()
            stored = existing_values.get(name)
            keep_value = not is_read_only(item) and stored is not None and stored.has_value()

            default = _render_or_empty(builder, name, item.default)
            value = current.value if keep_value else _render_or_empty(builder, name, item.value)
            config_ctx.item_values[name] = ItemValue(value=value, default=default, filename=current.filename)
            graph.resolve_dep(name)
        heads = graph.get_head_nodes()

    logger.debug("Resolved %d config items in order %s", len(graph.resolved), graph.resolved)
    return config_ctx


def evaluation_order(graph: DepGraph) -> List[List[str]]:
    """Batches of head nodes in the order a resolution pass would visit them.

    Works on a copy; *graph* is left untouched.
    """
    work = graph.copy()
    batches: List[List[str]] = []
    heads = work.get_head_nodes()
    while heads:
        batches.append(heads)
        for name in heads:
            work.resolve_dep(name)
        heads = work.get_head_nodes()
    return batches


def _when(builder: Builder, name: str, text: str) -> bool:
    if not text:
        return True
    try:
        return builder.render_bool(text, True)
    except TemplateError as exc:
        logger.warning("Failed to render when condition of %s: %s", name, exc)
        return True


def missing_required_items(
    groups: List[ConfigGroup],
    item_values: Mapping[str, ItemValue],
    builder: Builder,
) -> List[str]:
    """Names of required, visible items that have neither a value nor a default."""
    missing: List[str] = []
    for group in groups:
        if not _when(builder, group.name, group.when):
            continue
        for item in group.items:
            if not item.required or item.hidden:
                continue
            if not _when(builder, item.name, item.when):
                continue
            current = item_values.get(item.name)
            if current is None or not (current.has_value() or current.has_default()):
                missing.append(item.name)
    return missing


def render_document(text: str, builder: Builder, name: str = "document") -> str:
    """Render an arbitrary document (e.g. a manifest) against *builder*."""
    return builder.render_template(name, text)
