"""Template rendering, capability providers and dependency resolution."""

from replconfig.template.builder import Builder, FuncMap, TemplateFunctionSet
from replconfig.template.config_ctx import ConfigCtx, new_config_context
from replconfig.template.depgraph import CircularDependencyError, DepGraph, RecordingCtx
from replconfig.template.identity_ctx import IdentityCtx
from replconfig.template.kurl_ctx import KurlCtx
from replconfig.template.license_ctx import LicenseCtx
from replconfig.template.resolver import (
    evaluation_order,
    is_read_only,
    missing_required_items,
    new_builder,
    render_document,
    resolve_config_values,
)
from replconfig.template.static_ctx import StaticCtx
from replconfig.template.syntax import TemplateError, TemplateParseError
from replconfig.template.tls import TLSCache, TLSPair
from replconfig.template.version_ctx import VersionCtx

__all__ = [
    "Builder",
    "CircularDependencyError",
    "ConfigCtx",
    "DepGraph",
    "FuncMap",
    "IdentityCtx",
    "KurlCtx",
    "LicenseCtx",
    "RecordingCtx",
    "StaticCtx",
    "TLSCache",
    "TLSPair",
    "TemplateError",
    "TemplateFunctionSet",
    "TemplateParseError",
    "VersionCtx",
    "evaluation_order",
    "is_read_only",
    "missing_required_items",
    "new_builder",
    "new_config_context",
    "render_document",
    "resolve_config_values",
]
