"""Base channel: inbound normalization and outbound delivery shared by all platforms.

Subclasses supply the platform transport through a handful of hooks
(``parse_event``, ``_parse_text``, ``_send_rich``, ``_send_plain``, ...);
everything between a raw event and the agent, and between agent text and the
platform send primitive, lives here.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Pattern, Union

from ..render import split_text
from .dedup import DEDUP_SWEEP_INTERVAL_SECONDS, DEDUP_TTL_SECONDS, DedupStore
from .errors import ChannelConnectError
from .mentions import build_trigger_pattern, format_mention, normalize_mentions
from .models import (
    ChannelCapabilities,
    ChatMetadataEvent,
    InboundEvent,
    MentionUser,
    Message,
    OutgoingQueueItem,
    SendOptions,
)
from .outgoing import OutgoingQueue
from .protocol import OnChatMetadata, OnMessage, RegisteredGroupsProvider

logger = logging.getLogger(__name__)


def to_iso_timestamp(epoch_ms: Union[int, str, None] = None) -> str:
    """Epoch milliseconds (int or numeric string) -> ``2024-01-01T00:00:00.000Z``.

    Missing or unparseable input means "now".
    """
    try:
        ms = int(epoch_ms) if epoch_ms not in (None, "") else None
    except (TypeError, ValueError):
        ms = None
    if not ms:
        ms = int(time.time() * 1000)
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class BaseChannel(ABC):
    """Shared channel runtime: dedup, gating, mentions, retry, queueing.

    Runtime state (connected flag, dedup map, outgoing queue) belongs to the
    instance and is never shared between channels.
    """

    name: str = "base"
    jid_prefix: str = ""

    def __init__(
        self,
        on_message: OnMessage,
        on_chat_metadata: OnChatMetadata,
        registered_groups: RegisteredGroupsProvider,
        *,
        assistant_name: str,
        trigger_pattern: Optional[Pattern[str]] = None,
        capabilities: Optional[ChannelCapabilities] = None,
        dedup_ttl: float = DEDUP_TTL_SECONDS,
        dedup_sweep_interval: float = DEDUP_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._on_message = on_message
        self._on_chat_metadata = on_chat_metadata
        self._registered_groups = registered_groups
        self.assistant_name = assistant_name
        self.trigger_pattern = trigger_pattern or build_trigger_pattern(assistant_name)
        self.capabilities = capabilities or ChannelCapabilities()

        self._connected = False
        self._bot_id: Optional[str] = None
        self._dedup = DedupStore(ttl=dedup_ttl, sweep_interval=dedup_sweep_interval, clock=clock)
        self._outgoing = OutgoingQueue(name=self.name)
        # one platform delivery at a time, so chunks of different messages never interleave
        self._delivery_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Platform hooks
    # ------------------------------------------------------------------

    @abstractmethod
    async def _open_transport(self) -> None:
        """Open clients/sockets. Raise to abort ``connect()``."""

    @abstractmethod
    async def _close_transport(self) -> None:
        """Release everything ``_open_transport`` acquired."""

    async def _fetch_bot_id(self) -> Optional[str]:
        """Return the bot's own platform user id, or None if unknown."""
        return None

    @abstractmethod
    def parse_event(self, raw_event: Any) -> Optional[InboundEvent]:
        """Extract the platform-neutral fields; None for malformed events."""

    @abstractmethod
    def _parse_text(self, event: InboundEvent) -> Optional[str]:
        """Decode the text of a ``text`` event; None/empty if unusable."""

    @abstractmethod
    async def _send_rich(self, jid: str, chunk: str, reply_to: Optional[str]) -> None:
        """Send one chunk in the platform's rich format. Raise on failure."""

    @abstractmethod
    async def _send_plain(self, jid: str, text: str, reply_to: Optional[str]) -> None:
        """Send *text* in the platform's minimal format. Raise on failure."""

    def format_mention(self, user: MentionUser) -> str:
        return format_mention(user)

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @property
    def bot_id(self) -> Optional[str]:
        return self._bot_id

    @property
    def queue_depth(self) -> int:
        return len(self._outgoing)

    def is_connected(self) -> bool:
        return self._connected

    def owns_jid(self, jid: str) -> bool:
        return bool(self.jid_prefix) and jid.startswith(self.jid_prefix)

    def to_jid(self, chat_id: str) -> str:
        return f"{self.jid_prefix}{chat_id}"

    def chat_id_from_jid(self, jid: str) -> str:
        if self.jid_prefix and jid.startswith(self.jid_prefix):
            return jid[len(self.jid_prefix):]
        return jid

    async def connect(self) -> None:
        """Open the transport, learn the bot identity, flush queued output."""
        try:
            await self._open_transport()
        except ChannelConnectError:
            raise
        except Exception as exc:
            raise ChannelConnectError(f"{self.name}: failed to connect: {exc}") from exc

        try:
            self._bot_id = await self._fetch_bot_id()
        except Exception as exc:
            logger.warning("%s connected but failed to get bot info: %s", self.name, exc)
            self._bot_id = None

        self._dedup.start()
        self._connected = True
        logger.info("%s channel connected (bot_id=%s)", self.name, self._bot_id)

        await self.flush_outgoing()
        if self.capabilities.metadata_sync:
            try:
                await self.sync_chat_metadata()
            except Exception as exc:
                logger.error("%s chat metadata sync failed: %s", self.name, exc)

    async def disconnect(self) -> None:
        """Stop inbound processing, cancel the dedup sweep, close the transport.

        An in-flight flush is not aborted: the current item finishes and the
        flush loop stops before the next one.
        """
        was_connected = self._connected
        self._connected = False
        await self._dedup.stop()
        try:
            await self._close_transport()
        except Exception as exc:
            logger.warning("%s transport close error: %s", self.name, exc)
        if was_connected:
            logger.info("%s channel disconnected (%d message(s) queued)", self.name, self.queue_depth)

    async def set_typing(self, jid: str, is_typing: bool) -> None:
        return None

    async def add_reaction(self, jid: str, message_id: str, emoji_type: str) -> None:
        return None

    async def sync_chat_metadata(self) -> None:
        return None

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def ingest(self, raw_event: Any) -> Optional[Message]:
        """Run one raw event through the inbound pipeline.

        Returns the delivered :class:`Message`, or None when the event stopped
        somewhere along the way. Never raises.
        """
        if not self._connected:
            logger.debug("%s not connected, ignoring inbound event", self.name)
            return None
        try:
            return await self._ingest(raw_event)
        except Exception:
            logger.exception("%s failed to handle inbound event", self.name)
            return None

    async def _ingest(self, raw_event: Any) -> Optional[Message]:
        event = self.parse_event(raw_event)
        if event is None or not event.chat_id:
            logger.debug("%s dropped event without chat id", self.name)
            return None

        jid = self.to_jid(event.chat_id)
        await self._emit_chat_metadata(ChatMetadataEvent(
            jid=jid,
            timestamp=event.timestamp,
            name=event.chat_name,
            channel_tag=self.name,
            is_group=event.is_group,
        ))

        dedup_key = event.dedup_key or event.message_id
        if dedup_key and self._dedup.seen(dedup_key):
            logger.debug("%s duplicate message %s ignored", self.name, dedup_key)
            return None

        if event.msg_type != "text":
            return None

        text = self._parse_text(event)
        if not text:
            return None

        # fresh snapshot per event so registrations apply without reconnecting
        if jid not in self._registered_groups():
            return None

        is_bot_message = bool(self._bot_id and event.sender_id == self._bot_id)
        sender_name = (
            self.assistant_name if is_bot_message
            else event.sender_name or event.sender_id or "unknown"
        )
        content = normalize_mentions(
            text,
            event.mentions,
            bot_id=self._bot_id,
            assistant_name=self.assistant_name,
            trigger_pattern=self.trigger_pattern,
            is_from_me=is_bot_message,
        )

        message = Message(
            id=event.message_id,
            chat_jid=jid,
            sender=event.sender_id,
            sender_name=sender_name,
            content=content,
            timestamp=event.timestamp,
            is_from_me=is_bot_message,
            is_bot_message=is_bot_message,
        )
        try:
            await _invoke(self._on_message, jid, message)
        except Exception:
            logger.exception("%s on_message callback failed for %s", self.name, jid)
        return message

    async def _emit_chat_metadata(self, event: ChatMetadataEvent) -> None:
        try:
            await _invoke(self._on_chat_metadata, event)
        except Exception:
            logger.exception("%s on_chat_metadata callback failed for %s", self.name, event.jid)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_message(self, jid: str, text: str, options: Optional[SendOptions] = None) -> None:
        """Send now if possible, otherwise queue. Never raises."""
        options = options or SendOptions()
        item = OutgoingQueueItem(jid=jid, text=text)

        if await self._outgoing.submit(item, connected=self._connected):
            if self._connected:
                logger.info("%s message queued behind pending output (jid=%s)", self.name, jid)
                await self.flush_outgoing()
            else:
                logger.info(
                    "%s disconnected, message queued (jid=%s, queue=%d)",
                    self.name, jid, self.queue_depth,
                )
            return

        # this send now owns delivery; later sends queue behind it
        delivered = False
        try:
            delivered = await self._deliver(jid, text, options)
        finally:
            depth = await self._outgoing.finish_direct(item, delivered)

        if not delivered:
            logger.warning("Failed to send %s message to %s, queued (queue=%d)", self.name, jid, depth)
        elif depth and self._connected:
            await self.flush_outgoing()

    async def flush_outgoing(self) -> int:
        """Drain queued messages in order; see :meth:`OutgoingQueue.flush`."""
        return await self._outgoing.flush(self._deliver_queued, self.is_connected)

    async def _deliver_queued(self, item: OutgoingQueueItem) -> bool:
        return await self._deliver(item.jid, item.text, SendOptions())

    async def _deliver(self, jid: str, text: str, options: SendOptions) -> bool:
        """Rich send, then one plain-text retry. True if either went through."""
        if options.mention_user is not None:
            text = f"{self.format_mention(options.mention_user)} {text}"
        reply_to = options.reply_to_message_id

        async with self._delivery_lock:
            try:
                chunks = split_text(text, self.capabilities.text_chunk_limit)
                for i, chunk in enumerate(chunks):
                    await self._send_rich(jid, chunk, reply_to if i == 0 else None)
                logger.info(
                    "%s message sent (jid=%s, length=%d, chunks=%d)",
                    self.name, jid, len(text), len(chunks),
                )
                return True
            except Exception as exc:
                logger.warning("%s send failed for %s, retrying as plain text: %s", self.name, jid, exc)

            try:
                await self._send_plain(jid, text, reply_to)
                logger.info("%s message sent as plain text (jid=%s, length=%d)", self.name, jid, len(text))
                return True
            except Exception as exc:
                logger.warning("%s plain-text fallback failed for %s: %s", self.name, jid, exc)
                return False
