"""Channel abstraction layer for multi-platform chat bridging."""

from .base import BaseChannel, to_iso_timestamp
from .dedup import DedupStore
from .errors import ChannelConfigError, ChannelConnectError, ChannelError, ChannelSendError
from .mentions import build_trigger_pattern, format_mention, normalize_mentions
from .models import (
    ChannelCapabilities,
    ChatMetadataEvent,
    InboundEvent,
    Mention,
    MentionUser,
    Message,
    OutgoingQueueItem,
    RegisteredGroup,
    SendOptions,
)
from .outgoing import OutgoingQueue
from .protocol import Channel
from .router import ChannelRouter

__all__ = [
    "BaseChannel",
    "Channel",
    "ChannelCapabilities",
    "ChannelConfigError",
    "ChannelConnectError",
    "ChannelError",
    "ChannelRouter",
    "ChannelSendError",
    "ChatMetadataEvent",
    "DedupStore",
    "InboundEvent",
    "Mention",
    "MentionUser",
    "Message",
    "OutgoingQueue",
    "OutgoingQueueItem",
    "RegisteredGroup",
    "SendOptions",
    "build_trigger_pattern",
    "format_mention",
    "normalize_mentions",
    "to_iso_timestamp",
]
