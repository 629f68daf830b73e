"""
Twitch IRC 客户端（基于 pydle）

- TLS 连接 irc.chat.twitch.tv:6697，PASS 使用 oauth:<token>
- 请求 twitch.tv/tags 与 twitch.tv/commands 能力，读取发送者角色标签
- 在 on_connect 中加入频道，断线重连后自动重新加入
- 发送端按最小间隔串行，遵守 Twitch 聊天频率限制
"""
import asyncio
import logging
import time
from typing import Any

import pydle

from ..auth import TwitchAuthError
from .base import ChatMessageMeta, ChatTransport, ChatUserInfo

logger = logging.getLogger(__name__)

TWITCH_IRC_HOST = "irc.chat.twitch.tv"
TWITCH_IRC_PORT = 6697

# 普通账号 30 秒最多 20 条
MIN_SEND_INTERVAL_SECONDS = 1.5

AUTH_FAILURE_NOTICES = ("login authentication failed", "improperly formatted auth")


def _tag(tags: dict, key: str) -> str:
    value = tags.get(key)
    if value is None or value is True:
        return ""
    return str(value)


def parse_user_info(nick: str, tags: dict[str, Any]) -> ChatUserInfo:
    """从 IRCv3 标签中解析发送者信息"""
    badges = {item.split("/", 1)[0] for item in _tag(tags, "badges").split(",") if item}
    return ChatUserInfo(
        user_name=nick.lower(),
        display_name=_tag(tags, "display-name") or nick,
        user_id=_tag(tags, "user-id") or None,
        is_mod=_tag(tags, "mod") == "1" or "moderator" in badges,
        is_broadcaster="broadcaster" in badges,
        is_vip="vip" in badges or bool(tags.get("vip")),
        is_subscriber=_tag(tags, "subscriber") == "1" or "subscriber" in badges,
    )


def _source_nick(source: str | None) -> str:
    return (source or "").split("!", 1)[0]


class _TwitchIrcClient(pydle.Client):
    """把 pydle 事件转交给 PydleChatTransport"""

    def __init__(self, transport: "PydleChatTransport", nickname: str):
        super().__init__(nickname)
        self._transport = transport

    async def on_connect(self):
        await super().on_connect()
        await self.rawmsg("CAP", "REQ", "twitch.tv/tags twitch.tv/commands")
        if self._transport.rejoin_channels_on_reconnect or not self._transport.joined_once:
            for channel in self._transport.channels:
                await self.join(f"#{channel}")
        self._transport.joined_once = True
        self._transport.connected_event.set()

    async def on_disconnect(self, expected):
        self._transport.connected_event.clear()
        self._transport.log("warning", f"IRC 连接断开 (expected={expected})")
        try:
            await super().on_disconnect(expected)
        finally:
            # 重连次数用尽后 pydle 不再尝试
            if not self.connected:
                self._transport.fail_connect(ConnectionError("IRC 连接断开，已放弃重连"))

    async def on_raw_privmsg(self, message):
        target, text = message.params[0], message.params[-1]
        if not target.startswith("#"):
            return
        nick = _source_nick(message.source)
        tags = dict(getattr(message, "tags", None) or {})
        meta = ChatMessageMeta(
            user_info=parse_user_info(nick, tags),
            id=_tag(tags, "id") or None,
            tags=tags,
        )
        await self._transport.emit_message(target, nick, text, meta)

    async def on_raw_whisper(self, message):
        text = message.params[-1]
        nick = _source_nick(message.source)
        tags = dict(getattr(message, "tags", None) or {})
        meta = ChatMessageMeta(user_info=parse_user_info(nick, tags), id=None, tags=tags)
        await self._transport.emit_whisper(nick, text, meta)

    async def on_raw_notice(self, message):
        text = message.params[-1] if message.params else ""
        if any(notice in text.lower() for notice in AUTH_FAILURE_NOTICES):
            self._transport.log("error", f"认证失败: {text}")
            # Token 被拒绝时重连没有意义
            self.RECONNECT_ON_ERROR = False
            self._transport.fail_connect(TwitchAuthError(f"Twitch 拒绝登录: {text}"))
        else:
            self._transport.log("info", f"NOTICE: {text}")


class PydleChatTransport(ChatTransport):
    """pydle 实现的聊天传输层"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.joined_once = False
        self.connected_event = asyncio.Event()
        self._client: _TwitchIrcClient | None = None
        self._send_lock = asyncio.Lock()
        self._last_send_at = 0.0
        self._connect_failure: asyncio.Future | None = None

    def fail_connect(self, error: BaseException) -> None:
        """让正在等待的 connect() 以 error 结束（连接建立后调用无效果）"""
        if self._connect_failure is not None and not self._connect_failure.done():
            self._connect_failure.set_exception(error)

    async def connect(self) -> None:
        """
        建立连接并等待 on_connect 完成

        Raises:
            TwitchAuthError: Twitch 拒绝登录
            ConnectionError: 连接断开且重连已放弃
        """
        token = await self.auth_provider.get_access_token()
        self._connect_failure = asyncio.get_running_loop().create_future()
        self._client = _TwitchIrcClient(self, self.username.lower())
        connected = asyncio.ensure_future(self.connected_event.wait())
        try:
            await self._client.connect(
                TWITCH_IRC_HOST,
                TWITCH_IRC_PORT,
                password=f"oauth:{token}",
                tls=True,
                tls_verify=True,
            )
            await asyncio.wait([connected, self._connect_failure], return_when=asyncio.FIRST_COMPLETED)
            if not connected.done():
                self._connect_failure.result()
        finally:
            connected.cancel()
            failure, self._connect_failure = self._connect_failure, None
            if failure.done():
                # 连接成功与失败同时发生时，失败结果也要取走
                failure.exception()
            else:
                failure.cancel()
        self.log("info", f"IRC 已连接: {self.username}")

    async def join(self, channel: str) -> None:
        if channel not in self.channels:
            self.channels.append(channel)
        if self._client is not None:
            await self._client.join(f"#{channel}")

    async def say(self, channel: str, text: str) -> None:
        if self._client is None or not self._client.connected:
            raise ConnectionError("IRC 未连接")
        async with self._send_lock:
            wait = MIN_SEND_INTERVAL_SECONDS - (time.monotonic() - self._last_send_at)
            if wait > 0:
                await asyncio.sleep(wait)
            await self._client.message(f"#{channel.lstrip('#')}", text)
            self._last_send_at = time.monotonic()

    async def quit(self) -> None:
        client, self._client = self._client, None
        if client is not None and client.connected:
            await client.quit()
