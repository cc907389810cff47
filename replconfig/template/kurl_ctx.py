"""Installer (kURL) provider.

Values are addressed by YAML path, e.g. ``KurlString "Kubernetes.Version"``.
Lookups of missing paths, or of values of another type, return the type's
zero value.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

import yaml

from replconfig.config.models import KurlValues
from replconfig.template.funcs import format_value


class KurlCtx:
    def __init__(self, values: Optional[KurlValues] = None) -> None:
        self.values = values

    def _get(self, path: str) -> Any:
        if self.values is None:
            return None
        return self.values.get(path)

    def kurl_bool(self, path: str) -> bool:
        value = self._get(path)
        return value if isinstance(value, bool) else False

    def kurl_int(self, path: str) -> int:
        value = self._get(path)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return 0

    def kurl_string(self, path: str) -> str:
        value = self._get(path)
        return value if isinstance(value, str) else ""

    def kurl_option(self, path: str) -> str:
        """Any value at *path*, formatted as text."""
        return format_value(self._get(path))

    def kurl_all(self) -> str:
        """Every installer value as a YAML mapping."""
        if self.values is None or not self.values.values:
            return ""
        return yaml.safe_dump(self.values.values, default_flow_style=False, sort_keys=True)

    def func_map(self) -> Dict[str, Callable[..., Any]]:
        return {
            "KurlBool": self.kurl_bool,
            "KurlInt": self.kurl_int,
            "KurlString": self.kurl_string,
            "KurlOption": self.kurl_option,
            "KurlAll": self.kurl_all,
        }
