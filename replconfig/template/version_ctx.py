"""Version provider: metadata of the release being rendered."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from replconfig.config.models import VersionInfo


class VersionCtx:
    def __init__(self, info: Optional[VersionInfo] = None) -> None:
        self.info = info

    def func_map(self) -> Dict[str, Callable[..., Any]]:
        info = self.info
        return {
            "Cursor": lambda: info.cursor if info else "",
            "ChannelName": lambda: info.channel_name if info else "",
            "VersionLabel": lambda: info.version_label if info else "",
            "Sequence": lambda: info.sequence if info else 0,
            "ReleaseNotes": lambda: info.release_notes if info else "",
            "IsAirgap": lambda: info.is_airgap if info else False,
        }
