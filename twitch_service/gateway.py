"""
Twitch 网关

进程内唯一的运行时入口，持有：
- TwitchClientManager（连接注册表）
- StatusStore（账号运行状态）
- 每个已启动账号的 TwitchMonitor

由 FastAPI 的 lifespan 创建，关闭时调用 shutdown() 断开所有连接。
"""
import logging
from functools import partial
from typing import Optional

from .actions import handle_action
from .client_manager import TwitchClientManager
from .clients.base import TransportFactory
from .config import (
    AccountConfig,
    ServiceConfig,
    get_account_config,
    is_account_configured,
    is_channel_enabled,
    list_account_ids,
)
from .models import SendResult
from .monitor import TwitchMonitor, monitor_twitch_provider
from .probe import DEFAULT_PROBE_TIMEOUT_MS, ProbeResult, probe_twitch
from .resolver import ResolveKind, ResolveResult, resolve_twitch_targets
from .sender import send_message_twitch_internal
from .services.forwarder import AgentRouter, HttpAgentRouter
from .status import (
    StatusIssue,
    StatusSnapshot,
    StatusStore,
    build_account_snapshot,
    build_channel_summary,
    collect_status_issues,
)
from .token import resolve_twitch_token
from .utils.twitch import format_error, now_ms

logger = logging.getLogger(__name__)


class AccountNotFoundError(KeyError):
    """账号不存在"""


class TwitchGateway:
    """Twitch 账号生命周期管理"""

    def __init__(
        self,
        service_config: ServiceConfig,
        agent_router: Optional[AgentRouter] = None,
        transport_factory: Optional[TransportFactory] = None,
        env=None,
    ):
        self.config = service_config
        self.transport_factory = transport_factory
        self.client_manager = TwitchClientManager(transport_factory=transport_factory, env=env)
        self.status = StatusStore()
        self.agent_router = agent_router or HttpAgentRouter(
            service_config.agent_url,
            service_config.agent_api_key,
            service_config.agent_timeout,
        )
        self._monitors: dict[str, TwitchMonitor] = {}

    def get_cfg(self) -> dict:
        return self.config.get_cfg()

    def resolve_account(self, account_id: str) -> AccountConfig:
        """
        读取账号配置，token 替换为分层解析后的结果

        Raises:
            AccountNotFoundError: 账号不存在
        """
        cfg = self.get_cfg()
        account = get_account_config(cfg, account_id)
        if account is None:
            available = ", ".join(list_account_ids(cfg)) or "none"
            raise AccountNotFoundError(f"账号不存在: {account_id}。可用账号: {available}")
        resolution = resolve_twitch_token(cfg, account_id, self.client_manager.env)
        return account.copy_with(token=resolution.token)

    def is_running(self, account_id: str) -> bool:
        return account_id in self._monitors

    # ============== 生命周期 ==============

    async def start_account(self, account_id: str) -> TwitchMonitor:
        """
        启动账号：建立连接并开始监听

        Raises:
            AccountNotFoundError: 账号不存在
            TwitchCredentialError: 缺少凭证
        """
        existing = self._monitors.get(account_id)
        if existing is not None:
            return existing

        account = self.resolve_account(account_id)
        self.status.patch(
            account_id,
            enabled=account.enabled,
            configured=is_account_configured(account),
            running=True,
            last_start_at=now_ms(),
            last_error=None,
        )
        logger.info(f"[twitch] 正在启动 {account.username} 的 Twitch 连接")

        try:
            monitor = await monitor_twitch_provider(
                account,
                account_id,
                self.get_cfg(),
                self.client_manager,
                self.agent_router,
                status_sink=partial(self.status.patch, account_id),
                strip_markdown=self.config.plugin_config.strip_markdown,
            )
        except Exception as e:
            self.status.patch(account_id, running=False, last_error=format_error(e))
            raise

        self._monitors[account_id] = monitor
        return monitor

    async def stop_account(self, account_id: str) -> None:
        monitor = self._monitors.pop(account_id, None)
        if monitor is not None:
            monitor.stop()
            await self.client_manager.disconnect(monitor.account)
        self.status.patch(account_id, running=False, last_stop_at=now_ms())
        logger.info(f"[twitch] 已停止账号 {account_id} 的 Twitch 连接")

    async def start_all(self) -> list[str]:
        """
        启动所有已启用且配置完整的账号

        单个账号启动失败只记日志，不影响其他账号。

        Returns:
            成功启动的账号 ID 列表
        """
        cfg = self.get_cfg()
        if not is_channel_enabled(cfg):
            logger.info("[twitch] channels.twitch.enabled 为 false，不启动任何账号")
            return []

        started = []
        for account_id in list_account_ids(cfg):
            account = self.resolve_account(account_id)
            if not account.enabled:
                logger.info(f"[twitch] 账号 {account_id} 已禁用，跳过")
                continue
            if not is_account_configured(account):
                logger.warning(f"[twitch] 账号 {account_id} 配置不完整，跳过")
                continue
            try:
                await self.start_account(account_id)
                started.append(account_id)
            except Exception as e:
                logger.error(f"[twitch] 启动账号 {account_id} 失败: {format_error(e)}")
        return started

    async def shutdown(self) -> None:
        for account_id, monitor in list(self._monitors.items()):
            monitor.stop()
            self.status.patch(account_id, running=False, last_stop_at=now_ms())
        self._monitors.clear()
        await self.client_manager.disconnect_all()

    # ============== 诊断 ==============

    async def probe_account(self, account_id: str, timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS) -> ProbeResult:
        account = self.resolve_account(account_id)
        result = await probe_twitch(account, timeout_ms, transport_factory=self.transport_factory)
        self.status.patch(account_id, probe=result.to_dict(), last_probe_at=now_ms())
        return result

    def build_snapshots(self) -> list[StatusSnapshot]:
        snapshots = []
        for account_id in list_account_ids(self.get_cfg()):
            account = self.resolve_account(account_id)
            snapshots.append(build_account_snapshot(
                account_id,
                account,
                runtime=self.status.get(account_id),
                configured=is_account_configured(account),
            ))
        return snapshots

    def collect_issues(self) -> list[StatusIssue]:
        return collect_status_issues(self.build_snapshots(), self.get_cfg)

    def describe_account(self, account_id: str) -> dict:
        account = self.resolve_account(account_id)
        snapshot = build_account_snapshot(
            account_id,
            account,
            runtime=self.status.get(account_id),
            configured=is_account_configured(account),
        )
        return {
            **account.to_dict(),
            **build_channel_summary(snapshot),
            "lastInboundAt": snapshot.last_inbound_at,
            "lastOutboundAt": snapshot.last_outbound_at,
        }

    # ============== 出站 / 工具 ==============

    async def send_text(self, to: str, text: str, account_id: str) -> SendResult:
        return await send_message_twitch_internal(
            to,
            text,
            self.get_cfg(),
            self.client_manager,
            account_id=account_id,
            strip_markdown=self.config.plugin_config.strip_markdown,
        )

    async def handle_action(self, action: str, params: dict, account_id: str | None = None) -> dict | None:
        return await handle_action(
            action,
            params,
            self.get_cfg(),
            self.client_manager,
            account_id=account_id,
            strip_markdown=self.config.plugin_config.strip_markdown,
        )

    async def resolve_targets(self, inputs: list[str], account_id: str, kind: ResolveKind = "user") -> list[ResolveResult]:
        account = self.resolve_account(account_id)
        return await resolve_twitch_targets(inputs, account, kind)

