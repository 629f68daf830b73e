"""
Twitch 消息监听

处理流程：
1. 连接管理器规范化入站消息
2. 访问控制判断（拒绝的消息只记日志，不回复）
3. 构建入站上下文，交给 AgentRouter
4. Agent 的回复经文本管道（去 Markdown、分拆）按顺序发回原频道

停止后只注销入站处理函数，已经在发送的消息不会被取消。
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from .access_control import check_access_control
from .client_manager import TwitchClientManager
from .config import AccountConfig
from .models import InboundMessage
from .sender import send_reply
from .services.forwarder import AgentRouter, InboundContext, ReplyPayload, RoutePeer
from .utils.twitch import now_ms

logger = logging.getLogger(__name__)

# status_sink(last_inbound_at=...) / status_sink(last_outbound_at=...)
StatusSink = Callable[..., None]


def format_agent_envelope(sender: str, body: str) -> str:
    return f"[Twitch] {sender}: {body}"


class TwitchMonitor:
    """单个账号的消息监听器"""

    def __init__(
        self,
        account: AccountConfig,
        account_id: str,
        cfg: Any,
        client_manager: TwitchClientManager,
        agent_router: AgentRouter,
        status_sink: Optional[StatusSink] = None,
        strip_markdown: bool = True,
    ):
        self.account = account
        self.account_id = account_id
        self.cfg = cfg
        self.client_manager = client_manager
        self.agent_router = agent_router
        self.status_sink = status_sink
        self.strip_markdown = strip_markdown
        self._stopped = False
        self._unregister: Optional[Callable[[], None]] = None
        self._abort_task: Optional[asyncio.Task] = None

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def start(self, abort_event: Optional[asyncio.Event] = None) -> None:
        """
        注册入站处理函数并建立连接

        Raises:
            TwitchCredentialError: 缺少凭证
            Exception: 连接失败
        """
        self._unregister = self.client_manager.on_message(self.account, self.handle_message)
        try:
            await self.client_manager.get_client(self.account, self.cfg, self.account_id)
        except Exception as e:
            logger.error(f"[twitch] 连接失败: {e}")
            self.stop()
            raise
        logger.info(f"[twitch] 已以 {self.account.username} 身份连接 Twitch")

        if abort_event is not None:
            self._abort_task = asyncio.ensure_future(self._watch_abort(abort_event))

    async def _watch_abort(self, abort_event: asyncio.Event) -> None:
        await abort_event.wait()
        self._abort_task = None
        self.stop()

    def stop(self) -> None:
        """停止监听（幂等）"""
        if self._stopped:
            return
        self._stopped = True
        if self._unregister is not None:
            self._unregister()
            self._unregister = None
        if self._abort_task is not None:
            self._abort_task.cancel()
            self._abort_task = None
        logger.info(f"[twitch] 已停止监听账号 {self.account_id}")

    def _record(self, **fields) -> None:
        if self.status_sink is None:
            return
        try:
            self.status_sink(**fields)
        except Exception as e:
            logger.warning(f"[twitch] 更新状态失败: {e}")

    # ============== 入站 ==============

    async def handle_message(self, message: InboundMessage) -> None:
        if self._stopped:
            return

        decision = check_access_control(message, self.account, self.account.username)
        if not decision.allowed:
            logger.info(f"[twitch] 忽略来自 {message.username} 的消息: {decision.reason or 'blocked'}")
            return

        self._record(last_inbound_at=now_ms())

        try:
            await self.process_message(message)
        except Exception as e:
            logger.error(f"[twitch] 消息处理失败: {e}", exc_info=True)

    def build_context(self, message: InboundMessage) -> InboundContext:
        route = self.agent_router.resolve_agent_route(
            self.account_id,
            RoutePeer(kind="group", id=message.channel),
        )
        sender = message.display_name or message.username
        return InboundContext(
            body=format_agent_envelope(sender, message.message),
            raw_body=message.message,
            from_=f"twitch:user:{message.user_id}",
            to=f"twitch:channel:{message.channel}",
            session_key=route.session_key,
            account_id=route.account_id,
            sender_name=sender,
            sender_id=message.user_id,
            sender_username=message.username,
            conversation_label=message.channel,
            message_sid=message.id,
        )

    async def process_message(self, message: InboundMessage) -> None:
        ctx = self.build_context(message)

        async def deliver(payload: ReplyPayload) -> None:
            await self.deliver_reply(message.channel, payload)

        await self.agent_router.dispatch_reply(ctx, deliver)

    # ============== 出站 ==============

    async def deliver_reply(self, channel: str, payload: ReplyPayload) -> None:
        """把 Agent 回复发回频道，失败只记日志"""
        if not payload.text:
            logger.error("[twitch] 回复内容为空，不发送")
            return

        try:
            result = await send_reply(
                self.client_manager,
                self.account,
                channel,
                payload.text,
                cfg=self.cfg,
                account_id=self.account_id,
                strip_markdown=self.strip_markdown,
            )
        except Exception as e:
            logger.error(f"[twitch] 发送回复失败: {e}", exc_info=True)
            return

        if result.ok:
            self._record(last_outbound_at=now_ms())
        else:
            logger.error(f"[twitch] 发送回复失败: {result.error}")


async def monitor_twitch_provider(
    account: AccountConfig,
    account_id: str,
    cfg: Any,
    client_manager: TwitchClientManager,
    agent_router: AgentRouter,
    status_sink: Optional[StatusSink] = None,
    abort_event: Optional[asyncio.Event] = None,
    strip_markdown: bool = True,
) -> TwitchMonitor:
    """
    启动账号监听

    Returns:
        TwitchMonitor，调用 stop() 结束监听

    Raises:
        连接失败时抛出原始异常
    """
    monitor = TwitchMonitor(
        account,
        account_id,
        cfg,
        client_manager,
        agent_router,
        status_sink=status_sink,
        strip_markdown=strip_markdown,
    )
    await monitor.start(abort_event)
    return monitor
