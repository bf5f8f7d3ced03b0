"""Channel protocol definition."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Union

from .models import ChannelCapabilities, ChatMetadataEvent, Message, RegisteredGroup, SendOptions

OnMessage = Callable[[str, Message], Union[None, Awaitable[None]]]
OnChatMetadata = Callable[[ChatMetadataEvent], Union[None, Awaitable[None]]]
RegisteredGroupsProvider = Callable[[], Mapping[str, RegisteredGroup]]


class Channel(Protocol):
    """Chat platform protocol. Lark, Telegram, ... each implement this."""

    @property
    def name(self) -> str:
        """Channel tag, e.g. ``"lark"``; also used as ``channel_tag`` in metadata."""
        ...

    @property
    def capabilities(self) -> ChannelCapabilities:
        """Declares what this channel supports."""
        ...

    async def connect(self) -> None:
        """Establish the transport. Raises on failure (fatal to startup)."""
        ...

    async def disconnect(self) -> None:
        """Tear down the transport and background tasks. Idempotent."""
        ...

    def is_connected(self) -> bool:
        ...

    def owns_jid(self, jid: str) -> bool:
        """Whether *jid* belongs to this channel's namespace. Pure."""
        ...

    async def send_message(self, jid: str, text: str, options: Optional[SendOptions] = None) -> None:
        """Deliver *text*; never raises, queues on failure."""
        ...

    async def set_typing(self, jid: str, is_typing: bool) -> None:
        """Show/hide a typing indicator. No-op where unsupported."""
        ...

    async def add_reaction(self, jid: str, message_id: str, emoji_type: str) -> None:
        """React to a message with a platform emoji. No-op where unsupported."""
        ...

    async def sync_chat_metadata(self) -> None:
        """Refresh chat names from the platform. No-op where unsupported."""
        ...

    async def ingest(self, raw_event: Any) -> Optional[Message]:
        """Handle one raw platform event; entry point for transport adapters."""
        ...
