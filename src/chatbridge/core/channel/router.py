"""Routes JIDs to the owning channel and inbound messages to the agent."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from .models import Message, SendOptions
from .protocol import Channel

logger = logging.getLogger(__name__)

AgentDispatch = Callable[[str, Message], Union[None, Awaitable[None]]]


class ChannelRouter:
    """Ordered list of active channels plus the agent dispatch hook.

    Channels are passed in explicitly; there is no global registry.
    """

    def __init__(self, channels: Sequence[Channel] = (), dispatch: Optional[AgentDispatch] = None) -> None:
        self._channels: List[Channel] = list(channels)
        self._dispatch = dispatch

    @property
    def channels(self) -> List[Channel]:
        return list(self._channels)

    def add_channel(self, channel: Channel) -> None:
        self._channels.append(channel)

    def set_dispatch(self, dispatch: AgentDispatch) -> None:
        self._dispatch = dispatch

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def owners(self, jid: str) -> List[Channel]:
        return [ch for ch in self._channels if ch.owns_jid(jid)]

    def find_channel(self, jid: str) -> Optional[Channel]:
        """Return the channel owning *jid*, or None.

        JID namespaces are disjoint; if two channels claim the same JID the
        first registered one wins and the overlap is logged.
        """
        owners = self.owners(jid)
        if not owners:
            return None
        if len(owners) > 1:
            logger.error(
                "JID %s claimed by several channels: %s",
                jid, ", ".join(ch.name for ch in owners),
            )
        return owners[0]

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_message(self, jid: str, message: Message) -> None:
        """Forward a normalized message to the agent; never raises."""
        if self._dispatch is None:
            logger.warning("No agent dispatch configured, dropping message %s from %s", message.id, jid)
            return
        try:
            result = self._dispatch(jid, message)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Agent dispatch failed for %s (message %s)", jid, message.id)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_message(self, jid: str, text: str, options: Optional[SendOptions] = None) -> bool:
        """Hand *text* to the owning channel. False when no channel owns *jid*."""
        channel = self.find_channel(jid)
        if channel is None:
            logger.warning("No channel owns JID %s, message dropped", jid)
            return False
        await channel.send_message(jid, text, options)
        return True

    async def set_typing(self, jid: str, is_typing: bool) -> bool:
        """False when no channel owns *jid*; channels without a typing indicator are skipped."""
        channel = self.find_channel(jid)
        if channel is None:
            return False
        if not channel.capabilities.typing:
            return True
        try:
            await channel.set_typing(jid, is_typing)
        except Exception as exc:
            logger.debug("set_typing failed for %s: %s", jid, exc)
        return True

    async def add_reaction(self, jid: str, message_id: str, emoji_type: str) -> bool:
        """React to *message_id*. False when no channel owns *jid* or it cannot react.

        Platform errors propagate to the caller.
        """
        channel = self.find_channel(jid)
        if channel is None or not channel.capabilities.reactions:
            return False
        await channel.add_reaction(jid, message_id, emoji_type)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect_all(self) -> None:
        """Connect every channel in order; the first failure propagates."""
        for channel in self._channels:
            logger.info("Connecting %s channel...", channel.name)
            await channel.connect()

    async def disconnect_all(self) -> None:
        for channel in self._channels:
            try:
                await channel.disconnect()
            except Exception as exc:
                logger.warning("Error disconnecting %s: %s", channel.name, exc)

    def get_status(self) -> Dict[str, Any]:
        """Per-channel connection state, queue depth and capabilities."""
        return {
            ch.name: {
                "connected": ch.is_connected(),
                "queued": getattr(ch, "queue_depth", 0),
                "capabilities": {
                    "typing": ch.capabilities.typing,
                    "reactions": ch.capabilities.reactions,
                    "metadata_sync": ch.capabilities.metadata_sync,
                },
            }
            for ch in self._channels
        }
