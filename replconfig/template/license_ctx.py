"""License provider."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from replconfig.config.models import License, VersionInfo
from replconfig.template.config_ctx import basic_auth, docker_config_json, registry_domains
from replconfig.template.funcs import format_value

#: License fields readable by name; these shadow entitlements of the same name.
BUILTIN_LICENSE_FIELDS: Dict[str, str] = {
    "isGitOpsSupported": "is_gitops_supported",
    "isIdentityServiceSupported": "is_identity_service_supported",
    "isGeoaxisSupported": "is_geoaxis_supported",
    "isAirgapSupported": "is_airgap_supported",
    "isSnapshotSupported": "is_snapshot_supported",
    "licenseSequence": "license_sequence",
    "licenseType": "license_type",
    "appSlug": "app_slug",
    "channelName": "channel_name",
    "customerName": "customer_name",
    "licenseID": "license_id",
    "licenseId": "license_id",
    "signature": "signature",
}


class LicenseCtx:
    def __init__(self, license: Optional[License] = None, version_info: Optional[VersionInfo] = None) -> None:
        self.license = license
        self.version_info = version_info

    def license_field_value(self, name: str) -> str:
        """Value of a built-in license field or custom entitlement, ``""`` if unknown."""
        if self.license is None:
            return ""
        spec = self.license.spec
        attr = BUILTIN_LICENSE_FIELDS.get(name)
        if attr is not None:
            return format_value(getattr(spec, attr))
        entitlement = spec.entitlements.get(name)
        if entitlement is None:
            return ""
        return format_value(entitlement.value)

    def license_docker_cfg(self) -> str:
        """Base64 ``.dockerconfigjson`` granting the license access to the vendor registries."""
        license_id = self.license.spec.license_id if self.license is not None else ""
        auth = basic_auth(license_id, license_id)
        return docker_config_json({domain: auth for domain in registry_domains(self.version_info)})

    def func_map(self) -> Dict[str, Callable[..., Any]]:
        return {
            "LicenseFieldValue": self.license_field_value,
            "LicenseDockerCfg": self.license_docker_cfg,
        }
