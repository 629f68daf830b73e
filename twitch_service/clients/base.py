"""
聊天传输层抽象

连接管理器只依赖这里定义的接口：connect / join / say / quit，
以及群聊消息 (channel, user, text, meta) 和私信 (user, text, meta) 两类事件。
底层协议与限流由具体实现负责。
"""
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from ..auth import AuthProvider

logger = logging.getLogger(__name__)

GroupMessageCallback = Callable[[str, str, str, "ChatMessageMeta"], Union[Awaitable[None], None]]
WhisperCallback = Callable[[str, str, "ChatMessageMeta"], Union[Awaitable[None], None]]


@dataclass
class ChatUserInfo:
    """发送者元信息"""
    user_name: str
    display_name: str = ""
    user_id: Optional[str] = None
    is_mod: bool = False
    is_broadcaster: bool = False
    is_vip: bool = False
    is_subscriber: bool = False


@dataclass
class ChatMessageMeta:
    """消息元信息（私信没有 id）"""
    user_info: ChatUserInfo
    id: Optional[str] = None
    tags: dict[str, Any] = field(default_factory=dict)


# 传输层日志级别到服务日志的映射
_LOG_LEVELS = {
    "critical": logging.ERROR,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


class ChatTransport:
    """聊天传输层基类"""

    def __init__(
        self,
        auth_provider: AuthProvider,
        username: str,
        channels: list[str] | None = None,
        rejoin_channels_on_reconnect: bool = True,
    ):
        self.auth_provider = auth_provider
        self.username = username
        self.channels = list(channels or [])
        self.rejoin_channels_on_reconnect = rejoin_channels_on_reconnect
        self._message_callbacks: list[GroupMessageCallback] = []
        self._whisper_callbacks: list[WhisperCallback] = []

    def on_message(self, callback: GroupMessageCallback) -> None:
        self._message_callbacks.append(callback)

    def on_whisper(self, callback: WhisperCallback) -> None:
        self._whisper_callbacks.append(callback)

    async def emit_message(self, channel: str, user: str, text: str, meta: ChatMessageMeta) -> None:
        for callback in list(self._message_callbacks):
            result = callback(channel, user, text, meta)
            if inspect.isawaitable(result):
                await result

    async def emit_whisper(self, user: str, text: str, meta: ChatMessageMeta) -> None:
        for callback in list(self._whisper_callbacks):
            result = callback(user, text, meta)
            if inspect.isawaitable(result):
                await result

    def log(self, level: str, message: str) -> None:
        logger.log(_LOG_LEVELS.get(level, logging.INFO), f"[twitch] {message}")

    async def connect(self) -> None:
        raise NotImplementedError

    async def join(self, channel: str) -> None:
        raise NotImplementedError

    async def say(self, channel: str, text: str) -> None:
        raise NotImplementedError

    async def quit(self) -> None:
        raise NotImplementedError


class TransportFactory(Protocol):
    def __call__(
        self,
        *,
        auth_provider: AuthProvider,
        username: str,
        channels: list[str],
        rejoin_channels_on_reconnect: bool = True,
    ) -> ChatTransport: ...


def create_chat_transport(
    *,
    auth_provider: AuthProvider,
    username: str,
    channels: list[str],
    rejoin_channels_on_reconnect: bool = True,
) -> ChatTransport:
    """默认传输层工厂（pydle IRC 客户端）"""
    from .twitch_irc import PydleChatTransport

    return PydleChatTransport(
        auth_provider=auth_provider,
        username=username,
        channels=channels,
        rejoin_channels_on_reconnect=rejoin_channels_on_reconnect,
    )
