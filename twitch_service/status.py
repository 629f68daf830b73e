"""
Twitch 状态与问题诊断

- StatusSnapshot: 每个账号的运行状态（只覆盖，不删除）
- StatusStore: 按账号保存快照，由网关和监听器更新
- collect_status_issues: 根据快照和配置诊断问题（纯函数，每次重新计算）
"""
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Callable, Literal, Optional

from .config import AccountConfig, get_account_config, is_account_configured
from .token import has_oauth_prefix
from .utils.twitch import now_ms

logger = logging.getLogger(__name__)

IssueKind = Literal["intent", "permissions", "config", "auth", "runtime"]

CHANNEL_NAME = "twitch"

# 连续运行超过该天数时提示重启
LONG_UPTIME_DAYS = 7

_DAY_MS = 24 * 60 * 60 * 1000


@dataclass
class StatusSnapshot:
    """账号运行状态（时间戳为毫秒）"""
    account_id: str
    enabled: bool = True
    configured: bool = False
    running: bool = False
    last_start_at: Optional[int] = None
    last_stop_at: Optional[int] = None
    last_error: Optional[str] = None
    last_inbound_at: Optional[int] = None
    last_outbound_at: Optional[int] = None
    last_probe_at: Optional[int] = None
    probe: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "accountId": self.account_id,
            "enabled": self.enabled,
            "configured": self.configured,
            "running": self.running,
            "lastStartAt": self.last_start_at,
            "lastStopAt": self.last_stop_at,
            "lastError": self.last_error,
            "lastInboundAt": self.last_inbound_at,
            "lastOutboundAt": self.last_outbound_at,
            "lastProbeAt": self.last_probe_at,
            "probe": self.probe,
        }


@dataclass
class StatusIssue:
    account_id: str
    kind: IssueKind
    message: str
    fix: str
    channel: str = CHANNEL_NAME

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "accountId": self.account_id,
            "kind": self.kind,
            "message": self.message,
            "fix": self.fix,
        }


class StatusStore:
    """按账号保存运行状态"""

    def __init__(self):
        self._snapshots: dict[str, StatusSnapshot] = {}

    def get(self, account_id: str) -> StatusSnapshot:
        snapshot = self._snapshots.get(account_id)
        if snapshot is None:
            snapshot = StatusSnapshot(account_id=account_id)
            self._snapshots[account_id] = snapshot
        return snapshot

    def patch(self, account_id: str, **fields) -> StatusSnapshot:
        """
        覆盖部分字段

        Raises:
            TypeError: 未知字段
        """
        snapshot = dataclasses.replace(self.get(account_id), **fields)
        self._snapshots[account_id] = snapshot
        return snapshot

    def snapshots(self) -> list[StatusSnapshot]:
        return list(self._snapshots.values())


# ============== 快照构建 ==============

def build_account_snapshot(
    account_id: str,
    account: AccountConfig | None,
    runtime: StatusSnapshot | None = None,
    probe: dict | None = None,
    configured: bool | None = None,
) -> StatusSnapshot:
    """合并配置与运行状态生成快照"""
    runtime = runtime or StatusSnapshot(account_id=account_id)
    return StatusSnapshot(
        account_id=account_id,
        enabled=bool(account) and account.enabled is not False,
        configured=is_account_configured(account) if configured is None else configured,
        running=runtime.running,
        last_start_at=runtime.last_start_at,
        last_stop_at=runtime.last_stop_at,
        last_error=runtime.last_error,
        last_inbound_at=runtime.last_inbound_at,
        last_outbound_at=runtime.last_outbound_at,
        last_probe_at=runtime.last_probe_at,
        probe=probe if probe is not None else runtime.probe,
    )


def build_channel_summary(snapshot: StatusSnapshot) -> dict:
    return {
        "configured": snapshot.configured,
        "running": snapshot.running,
        "lastStartAt": snapshot.last_start_at,
        "lastStopAt": snapshot.last_stop_at,
        "lastError": snapshot.last_error,
        "probe": snapshot.probe,
        "lastProbeAt": snapshot.last_probe_at,
    }


# ============== 问题诊断 ==============

def _config_issues(account_id: str, account: AccountConfig) -> list[StatusIssue]:
    issues = []

    if not account.client_id:
        issues.append(StatusIssue(
            account_id=account_id,
            kind="config",
            message="缺少 Twitch Client ID",
            fix="在账号配置中添加 clientId（在 Twitch Developer Portal 获取）",
        ))

    if has_oauth_prefix(account.token):
        issues.append(StatusIssue(
            account_id=account_id,
            kind="config",
            message="Token 带有 'oauth:' 前缀（会被自动去掉）",
            fix="'oauth:' 前缀可有可无，可以只填 Token 本身，也可以保留（会自动规范化）",
        ))

    if account.client_secret and not account.refresh_token:
        issues.append(StatusIssue(
            account_id=account_id,
            kind="config",
            message="配置了 clientSecret 但没有 refreshToken",
            fix="需要自动刷新 Token 时同时提供 clientSecret 和 refreshToken，否则不需要 clientSecret",
        ))

    if account.allow_from is not None and len(account.allow_from) == 0:
        issues.append(StatusIssue(
            account_id=account_id,
            kind="config",
            message="allowFrom 已配置但为空",
            fix="在 allowFrom 中添加用户 ID，或删除 allowFrom 字段，或改用 allowedRoles",
        ))

    if account.allowed_roles and "all" in account.allowed_roles and account.allow_from:
        issues.append(StatusIssue(
            account_id=account_id,
            kind="intent",
            message="allowedRoles 为 'all' 但同时配置了 allowFrom",
            fix="allowedRoles 为 'all' 时不需要 allowFrom，删除 allowFrom 或把 allowedRoles 改为具体角色",
        ))

    return issues


def collect_status_issues(
    snapshots: list[StatusSnapshot],
    get_cfg: Optional[Callable[[], Any]] = None,
    now: int | None = None,
) -> list[StatusIssue]:
    """
    诊断账号问题

    Args:
        snapshots: 账号快照列表
        get_cfg: 获取当前配置树（可选，提供时才做配置相关检查）
        now: 当前时间戳（毫秒，默认取系统时间）

    Returns:
        StatusIssue 列表
    """
    issues: list[StatusIssue] = []
    now = now_ms() if now is None else now

    for entry in snapshots:
        account_id = entry.account_id
        if not account_id:
            continue

        account = None
        if get_cfg is not None:
            try:
                account = get_account_config(get_cfg(), account_id)
            except Exception as e:
                logger.debug(f"读取账号配置失败: {account_id}, {e}")

        if not entry.configured:
            issues.append(StatusIssue(
                account_id=account_id,
                kind="config",
                message="Twitch 账号未正确配置",
                fix="在账号配置中添加必需字段: username、token 和 clientId",
            ))
            continue

        if entry.enabled is False:
            issues.append(StatusIssue(
                account_id=account_id,
                kind="config",
                message="Twitch 账号已禁用",
                fix="在账号配置中设置 enabled: true 以启用该账号",
            ))
            continue

        if account is not None:
            issues.extend(_config_issues(account_id, account))

        if entry.last_error:
            issues.append(StatusIssue(
                account_id=account_id,
                kind="runtime",
                message=f"最近一次错误: {entry.last_error}",
                fix="检查 Token 是否有效以及网络连接，确认 Bot 拥有所需的 OAuth scope",
            ))

        if (
            not entry.running
            and not entry.last_start_at
            and not entry.last_inbound_at
            and not entry.last_outbound_at
        ):
            issues.append(StatusIssue(
                account_id=account_id,
                kind="runtime",
                message="账号从未成功连接过",
                fix="启动 Twitch 网关以开始接收消息，并检查日志中的连接错误",
            ))

        if entry.running and entry.last_start_at:
            days = (now - entry.last_start_at) / _DAY_MS
            if days > LONG_UPTIME_DAYS:
                issues.append(StatusIssue(
                    account_id=account_id,
                    kind="runtime",
                    message=f"连接已持续运行 {int(days)} 天",
                    fix="建议定期重启连接，Token 长时间后可能失效",
                ))

    return issues
