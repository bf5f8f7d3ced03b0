"""Registered-group registry backed by a JSON file.

The file is re-read on every :meth:`GroupRegistry.load`, so a group added by
``chatbridge groups add`` takes effect on the next inbound event without a
restart.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from ..core.channel.models import RegisteredGroup
from .persistence import load_json, save_json

logger = logging.getLogger(__name__)

GROUPS_FILENAME = "registered_groups.json"


class GroupRegistry:
    """JID → :class:`RegisteredGroup` map; callable as a groups provider."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    def __call__(self) -> Dict[str, RegisteredGroup]:
        return self.load()

    def snapshot(self) -> Dict[str, RegisteredGroup]:
        return self.load()

    def load(self) -> Dict[str, RegisteredGroup]:
        raw = load_json(self.path, {})
        if not isinstance(raw, dict):
            logger.error("Registered groups file %s is not a JSON object", self.path)
            return {}
        groups: Dict[str, RegisteredGroup] = {}
        for jid, data in raw.items():
            if isinstance(data, dict):
                groups[str(jid)] = RegisteredGroup.from_dict(data)
        return groups

    def get(self, jid: str) -> Optional[RegisteredGroup]:
        return self.load().get(jid)

    def register(
        self,
        jid: str,
        name: str,
        folder: str = "",
        trigger: str = "",
        requires_trigger: bool = True,
    ) -> RegisteredGroup:
        group = RegisteredGroup(
            name=name,
            folder=folder or name,
            trigger=trigger,
            added_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            requires_trigger=requires_trigger,
        )
        groups = self.load()
        groups[jid] = group
        self._save(groups)
        logger.info("Registered group %s (%s)", jid, name)
        return group

    def unregister(self, jid: str) -> bool:
        groups = self.load()
        if groups.pop(jid, None) is None:
            return False
        self._save(groups)
        logger.info("Unregistered group %s", jid)
        return True

    def _save(self, groups: Dict[str, RegisteredGroup]) -> None:
        save_json(self.path, {jid: g.to_dict() for jid, g in groups.items()})
