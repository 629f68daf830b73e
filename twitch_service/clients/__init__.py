"""
Platform-specific clients

- base: 聊天传输层接口 (ChatTransport)
- twitch_irc: 基于 pydle 的 Twitch IRC 实现（按需导入）
"""
from .base import (
    ChatMessageMeta,
    ChatTransport,
    ChatUserInfo,
    TransportFactory,
    create_chat_transport,
)

__all__ = [
    "ChatMessageMeta",
    "ChatTransport",
    "ChatUserInfo",
    "TransportFactory",
    "create_chat_transport",
]
