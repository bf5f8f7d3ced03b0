"""
chatbridge - multi-channel chat bridge

Connects Lark and Telegram chats to a single downstream agent: one inbound
message stream, one outbound delivery pipeline.
"""

__version__ = "0.1.0"

from .core.channel.router import ChannelRouter
from .core.channel.models import Message, RegisteredGroup, SendOptions
from .channels.lark_channel import LarkChannel
from .channels.telegram_channel import TelegramChannel
from .cli.daemon import BridgeDaemon

__all__ = [
    "BridgeDaemon",
    "ChannelRouter",
    "LarkChannel",
    "Message",
    "RegisteredGroup",
    "SendOptions",
    "TelegramChannel",
]
