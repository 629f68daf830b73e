"""
Twitch 访问控制

按固定顺序判断（第一条适用的规则决定结果）:
1. 发送者是 Bot 自己 -> 拒绝（不可配置）
2. allowFrom 非空且包含发送者 user_id -> 允许（跳过角色与 @ 检查）
3. allowedRoles 非空 -> 包含 "all" 或命中发送者角色才允许
4. allowFrom 非空但未命中、且未配置 allowedRoles -> 拒绝
5. 未配置 allowFrom / allowedRoles -> 默认允许
最后，非白名单放行的消息在 requireMention 开启时必须 @Bot。
"""
import re
from dataclasses import dataclass
from typing import Optional

from .config import AccountConfig
from .models import InboundMessage

# 角色标签 -> 消息上的角色字段
ROLE_FLAGS = {
    "moderator": "is_mod",
    "owner": "is_owner",
    "vip": "is_vip",
    "subscriber": "is_sub",
}
ALL_ROLES = "all"

MENTION_PATTERN = re.compile(r"@(\w+)")


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None
    match_source: Optional[str] = None


def extract_mentions(text: str) -> set[str]:
    return {name.lower() for name in MENTION_PATTERN.findall(text or "")}


def check_access_control(
    message: InboundMessage,
    account: AccountConfig,
    bot_username: str,
) -> AccessDecision:
    """
    判断入站消息是否允许交给 Agent

    Args:
        message: 入站消息
        account: 账号配置（allowFrom / allowedRoles / requireMention）
        bot_username: Bot 自身用户名

    Returns:
        AccessDecision
    """
    bot_username = bot_username.lower()

    if message.username.lower() == bot_username:
        return AccessDecision(allowed=False, reason="忽略 Bot 自己的消息")

    allow_from = account.allow_from or []
    if allow_from and message.user_id and message.user_id in allow_from:
        return AccessDecision(allowed=True, match_source="allowlist")

    allowed_roles = account.allowed_roles or []
    if allowed_roles:
        if ALL_ROLES not in allowed_roles:
            has_role = any(
                getattr(message, ROLE_FLAGS[role], False)
                for role in allowed_roles
                if role in ROLE_FLAGS
            )
            if not has_role:
                return AccessDecision(
                    allowed=False,
                    reason=f"用户缺少所需角色: {', '.join(allowed_roles)}",
                )
        match_source = "role"
    elif allow_from:
        return AccessDecision(allowed=False, reason="用户不在 allowFrom 白名单中")
    else:
        match_source = "open"

    if account.require_mention and bot_username not in extract_mentions(message.message):
        return AccessDecision(allowed=False, reason="消息未 @Bot（已开启 requireMention）")

    return AccessDecision(allowed=True, match_source=match_source)
