"""
Twitch 连接管理器

每个 ConnectionKey (username:channel) 同一时间最多一条连接：
- get_client: 获取或创建连接（同 key 复用）
- on_message: 每个 key 只保留一个入站处理函数，后注册的替换先注册的
- send_message: 发送消息，失败以 SendResult 返回，不抛异常
- disconnect / disconnect_all: 断开连接并清理注册表

并发创建同一个 key 时，后来的调用会等待进行中的创建（in-flight 表），
不会重复建立连接。
"""
import asyncio
import inspect
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from .auth import AccessToken, AuthProvider, RefreshingAuthProvider, StaticAuthProvider
from .clients.base import ChatMessageMeta, ChatTransport, TransportFactory, create_chat_transport
from .config import AccountConfig
from .models import InboundMessage, SendResult
from .token import TokenResolution, normalize_token, resolve_twitch_token
from .utils.twitch import format_error, generate_message_id, now_ms

logger = logging.getLogger(__name__)

MessageHandler = Callable[[InboundMessage], Union[Awaitable[None], None]]

MISSING_TOKEN_ERROR = "缺少 Twitch Token"
MISSING_CLIENT_ID_ERROR = "缺少 Twitch Client ID"
CONNECT_ABORTED_ERROR = "连接建立过程中已被断开"


class TwitchCredentialError(ValueError):
    """凭证缺失，连接尝试失败（不自动重试）"""


# ============== 入站事件规范化 ==============

def normalize_group_message(channel_name: str, text: str, meta: ChatMessageMeta) -> InboundMessage:
    """群聊消息：去掉频道名的 # 前缀，id 取自传输层消息 ID"""
    info = meta.user_info
    channel = channel_name[1:] if channel_name.startswith("#") else channel_name
    return InboundMessage(
        username=info.user_name,
        display_name=info.display_name,
        user_id=info.user_id,
        message=text,
        channel=channel,
        id=meta.id,
        is_mod=info.is_mod,
        is_owner=info.is_broadcaster,
        is_vip=info.is_vip,
        is_sub=info.is_subscriber,
        chat_type="group",
    )


def normalize_whisper(text: str, meta: ChatMessageMeta) -> InboundMessage:
    """私信：频道设为发送者自己的用户名，没有消息 ID"""
    info = meta.user_info
    return InboundMessage(
        username=info.user_name,
        display_name=info.display_name,
        user_id=info.user_id,
        message=text,
        channel=info.user_name,
        id=None,
        is_mod=info.is_mod,
        is_owner=info.is_broadcaster,
        is_vip=info.is_vip,
        is_sub=info.is_subscriber,
        chat_type="direct",
    )


class TwitchClientManager:
    """管理所有 Twitch 聊天连接（每个进程一个实例）"""

    def __init__(
        self,
        transport_factory: Optional[TransportFactory] = None,
        env: Optional[Mapping[str, str]] = None,
    ):
        self._transport_factory = transport_factory or create_chat_transport
        self._env = env
        self._clients: dict[str, ChatTransport] = {}
        self._pending: dict[str, asyncio.Task] = {}
        self._message_handlers: dict[str, MessageHandler] = {}

    @staticmethod
    def get_account_key(account: AccountConfig) -> str:
        return f"{account.username}:{account.channel or account.username}"

    def has_client(self, account: AccountConfig) -> bool:
        return self.get_account_key(account) in self._clients

    @property
    def connection_count(self) -> int:
        return len(self._clients)

    @property
    def env(self) -> Optional[Mapping[str, str]]:
        """解析 Token 时使用的环境变量（None 表示 os.environ）"""
        return self._env

    # ============== 连接 ==============

    async def get_client(
        self,
        account: AccountConfig,
        cfg: Any = None,
        account_id: str | None = None,
    ) -> ChatTransport:
        """
        获取或创建账号的聊天连接

        Args:
            account: 账号配置
            cfg: 配置树（用于分层解析 Token；不传则直接使用 account.token）
            account_id: 账号 ID

        Raises:
            TwitchCredentialError: 缺少 Token 或 Client ID
            ConnectionError: 连接建立过程中被 disconnect 取消
        """
        key = self.get_account_key(account)

        existing = self._clients.get(key)
        if existing is not None:
            return existing

        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._create_client(account, key, cfg, account_id))
            self._pending[key] = pending
            pending.add_done_callback(partial(self._clear_pending, key))

        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            # 创建过程被 disconnect 取消；调用方自身被取消时 pending 不会被取消
            if pending.cancelled():
                raise ConnectionError(CONNECT_ABORTED_ERROR) from None
            raise

    def _clear_pending(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    def _resolve_token(self, account: AccountConfig, cfg: Any, account_id: str | None) -> TokenResolution:
        if cfg is not None:
            resolution = resolve_twitch_token(cfg, account_id or account.account_id, self._env)
            if resolution.token:
                return resolution
        token = normalize_token(account.token)
        if token:
            return TokenResolution(token=token, source="config")
        return TokenResolution(token=None, source="none")

    async def _create_client(
        self,
        account: AccountConfig,
        key: str,
        cfg: Any,
        account_id: str | None,
    ) -> ChatTransport:
        resolution = self._resolve_token(account, cfg, account_id)
        if not resolution.token:
            logger.error(f"[twitch] 账号 {account.username} 缺少 Token")
            raise TwitchCredentialError(MISSING_TOKEN_ERROR)
        if not account.client_id:
            logger.error(f"[twitch] 账号 {account.username} 缺少 Client ID")
            raise TwitchCredentialError(MISSING_CLIENT_ID_ERROR)

        auth_provider = self._create_auth_provider(account, resolution.token)
        channel = account.channel or account.username

        client = self._transport_factory(
            auth_provider=auth_provider,
            username=account.username,
            channels=[channel],
            rejoin_channels_on_reconnect=True,
        )

        # 先挂处理函数再连接，连接建立后的消息不会丢
        self._setup_client_handlers(client, key)

        try:
            await client.connect()
        except BaseException:
            try:
                await client.quit()
            except Exception as e:
                logger.debug(f"[twitch] 清理未建立的连接失败: {e}")
            raise

        self._clients[key] = client
        logger.info(f"[twitch] 已连接 Twitch: {account.username} (token 来源: {resolution.source})")
        return client

    def _create_auth_provider(self, account: AccountConfig, token: str) -> AuthProvider:
        if not account.client_secret:
            logger.info(f"[twitch] {account.username} 使用 StaticAuthProvider（未配置 clientSecret）")
            return StaticAuthProvider(account.client_id, token)

        provider = RefreshingAuthProvider(account.client_id, account.client_secret)
        registration = provider.add_user_for_token(AccessToken(
            access_token=token,
            refresh_token=account.refresh_token,
            expires_in=account.expires_in,
            obtainment_timestamp=account.obtainment_timestamp or now_ms(),
        ))
        registration.add_done_callback(partial(self._log_user_registration, account.username))

        provider.on_refresh(lambda user_id, new_token: logger.info(
            f"[twitch] 用户 {user_id} 的 Token 已刷新 "
            f"(expires in {f'{new_token.expires_in}s' if new_token.expires_in else 'unknown'})"
        ))
        provider.on_refresh_failure(lambda user_id, error: logger.error(
            f"[twitch] 用户 {user_id} 的 Token 刷新失败: {format_error(error)}"
        ))

        refresh_status = (
            "automatic token refresh enabled"
            if account.refresh_token
            else "token refresh disabled (no refresh token)"
        )
        logger.info(f"[twitch] {account.username} 使用 RefreshingAuthProvider ({refresh_status})")
        return provider

    @staticmethod
    def _log_user_registration(username: str, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[twitch] RefreshingAuthProvider 登记用户失败: {format_error(error)}")
        else:
            logger.info(f"[twitch] 已为 {username} 登记用户 {task.result()}")

    def _setup_client_handlers(self, client: ChatTransport, key: str) -> None:
        async def handle_message(channel_name: str, _user: str, text: str, meta: ChatMessageMeta) -> None:
            await self._dispatch(key, normalize_group_message(channel_name, text, meta))

        async def handle_whisper(_user: str, text: str, meta: ChatMessageMeta) -> None:
            await self._dispatch(key, normalize_whisper(text, meta))

        client.on_message(handle_message)
        client.on_whisper(handle_whisper)
        logger.info(f"[twitch] 已为 {key} 设置消息处理")

    async def _dispatch(self, key: str, message: InboundMessage) -> None:
        handler = self._message_handlers.get(key)
        if handler is None:
            return
        try:
            result = handler(message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"[twitch] 消息处理函数异常: {e}", exc_info=True)

    # ============== 入站处理函数 ==============

    def on_message(self, account: AccountConfig, handler: MessageHandler) -> Callable[[], None]:
        """
        注册入站处理函数（替换同 key 的旧处理函数）

        Returns:
            注销函数；只会移除本次注册的处理函数
        """
        key = self.get_account_key(account)
        self._message_handlers[key] = handler

        def unregister() -> None:
            if self._message_handlers.get(key) is handler:
                del self._message_handlers[key]

        return unregister

    # ============== 断开 ==============

    def _cancel_pending(self, key: str) -> bool:
        pending = self._pending.pop(key, None)
        if pending is None or pending.done():
            return False
        pending.cancel()
        logger.info(f"[twitch] 已取消正在建立的连接 {key}")
        return True

    async def disconnect(self, account: AccountConfig) -> None:
        key = self.get_account_key(account)
        cancelled = self._cancel_pending(key)
        client = self._clients.pop(key, None)
        if client is None:
            if cancelled:
                self._message_handlers.pop(key, None)
            return
        self._message_handlers.pop(key, None)
        try:
            await client.quit()
        except Exception as e:
            logger.warning(f"[twitch] 断开 {key} 时出错: {e}")
        logger.info(f"[twitch] 已断开 {key}")

    async def disconnect_all(self) -> None:
        for key in list(self._pending):
            self._cancel_pending(key)
        clients = list(self._clients.items())
        self._clients.clear()
        self._message_handlers.clear()
        for key, client in clients:
            try:
                await client.quit()
            except Exception as e:
                logger.warning(f"[twitch] 断开 {key} 时出错: {e}")
        logger.info("[twitch] 已断开所有连接")

    # ============== 发送 ==============

    async def send_message(
        self,
        account: AccountConfig,
        channel: str,
        text: str,
        cfg: Any = None,
        account_id: str | None = None,
    ) -> SendResult:
        """发送消息到频道（限流由传输层负责）"""
        message_id = generate_message_id()
        try:
            client = await self.get_client(account, cfg, account_id)
            await client.say(channel, text)
            return SendResult(ok=True, message_id=message_id, parts_sent=1)
        except Exception as e:
            error = format_error(e)
            logger.error(f"[twitch] 发送消息失败: {error}")
            return SendResult(ok=False, message_id=message_id, error=error)
