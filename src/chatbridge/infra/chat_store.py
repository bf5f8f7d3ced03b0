"""Known-chat metadata store (chat discovery).

Every inbound event upserts its chat here, registered or not, so operators
can see which chats the bot is in before registering them.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Union

from ..core.channel.models import ChatMetadataEvent
from .persistence import load_json, save_json

logger = logging.getLogger(__name__)

CHATS_FILENAME = "chats.json"


class ChatMetadataStore:
    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def all(self) -> Dict[str, Dict[str, Any]]:
        raw = load_json(self.path, {})
        return raw if isinstance(raw, dict) else {}

    def upsert(self, event: ChatMetadataEvent) -> None:
        """Record *event*; a known name is kept when the event carries none."""
        with self._lock:
            chats = self.all()
            entry = chats.get(event.jid) or {}
            entry.update({
                "channel": event.channel_tag,
                "is_group": event.is_group,
                "last_message_time": event.timestamp,
            })
            if event.name:
                entry["name"] = event.name
            chats[event.jid] = entry
            save_json(self.path, chats)

    def update_name(self, jid: str, name: str) -> None:
        with self._lock:
            chats = self.all()
            entry = chats.get(jid) or {}
            entry["name"] = name
            chats[jid] = entry
            save_json(self.path, chats)
