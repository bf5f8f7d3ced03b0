"""Channel message models and capability declarations."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Message:
    """A normalized inbound chat message handed to the agent."""

    id: str
    chat_jid: str  # channel-namespaced chat id, e.g. "lark:oc_123"
    sender: str  # platform user id of the author
    sender_name: str
    content: str
    timestamp: str  # ISO-8601, UTC
    is_from_me: bool = False
    is_bot_message: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ChatMetadataEvent:
    """Chat discovery record, emitted for every well-formed inbound event."""

    jid: str
    timestamp: str
    name: Optional[str]
    channel_tag: str  # "lark", "telegram"
    is_group: bool


@dataclass(frozen=True)
class RegisteredGroup:
    """A chat the agent is allowed to receive messages from."""

    name: str
    folder: str
    trigger: str
    added_at: str
    requires_trigger: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegisteredGroup":
        requires = data.get("requires_trigger", data.get("requiresTrigger", True))
        return cls(
            name=str(data.get("name", "")),
            folder=str(data.get("folder", "")),
            trigger=str(data.get("trigger", "")),
            added_at=str(data.get("added_at", "")),
            requires_trigger=bool(True if requires is None else requires),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MentionUser:
    """A user to @mention at the start of an outbound message."""

    id: str
    name: str


@dataclass(frozen=True)
class SendOptions:
    """Optional delivery hints for ``send_message``."""

    reply_to_message_id: Optional[str] = None
    mention_user: Optional[MentionUser] = None


@dataclass(frozen=True)
class OutgoingQueueItem:
    """A message waiting for (re)connection."""

    jid: str
    text: str
    attempts: int = field(default=0, compare=False)  # failed deliveries so far


@dataclass(frozen=True)
class Mention:
    """One entry of a platform mention list.

    ``key`` is the placeholder as it appears in the message text (Lark uses
    ``@_user_1``), ``user_id`` the identity it refers to.
    """

    key: str
    user_id: str
    name: str = ""


@dataclass
class InboundEvent:
    """Platform-neutral view of one raw inbound event."""

    chat_id: str
    message_id: str
    msg_type: str  # "text" | "image" | ...
    content: Any  # raw payload, decoded by the channel's _parse_text
    sender_id: str
    timestamp: str
    is_group: bool
    sender_name: str = ""
    chat_name: Optional[str] = None
    mentions: List[Mention] = field(default_factory=list)
    dedup_key: Optional[str] = None  # defaults to message_id


@dataclass
class ChannelCapabilities:
    """Declares what a channel can do, so callers need no per-platform branching."""

    typing: bool = False  # has a typing indicator
    reactions: bool = False  # can add emoji reactions to messages
    metadata_sync: bool = False  # can list the chats it belongs to
    text_chunk_limit: int = 4000  # max characters per outbound message
