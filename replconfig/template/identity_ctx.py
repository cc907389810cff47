"""Identity service provider."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from replconfig.config.models import IdentityConfig


class IdentityCtx:
    def __init__(self, config: Optional[IdentityConfig] = None) -> None:
        self.config = config

    def enabled(self) -> bool:
        return self.config is not None and self.config.enabled

    def client_id(self) -> str:
        return self.config.client_id if self.config else ""

    def client_secret(self) -> str:
        return self.config.client_secret if self.config else ""

    def restricted_groups(self) -> List[str]:
        return list(self.config.restricted_groups) if self.config else []

    def roles(self) -> Dict[str, List[str]]:
        """Group ID -> role IDs granted to members of that group."""
        if self.config is None:
            return {}
        return {group: list(roles) for group, roles in self.config.roles.items()}

    def service_name(self) -> str:
        return self.config.service_name if self.config else ""

    def func_map(self) -> Dict[str, Callable[..., Any]]:
        return {
            "IdentityServiceEnabled": self.enabled,
            "IdentityServiceClientID": self.client_id,
            "IdentityServiceClientSecret": self.client_secret,
            "IdentityServiceRestrictedGroups": self.restricted_groups,
            "IdentityServiceRoles": self.roles,
            "IdentityServiceName": self.service_name,
        }
