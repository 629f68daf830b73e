"""
Twitch Token 解析

优先级（从高到低）：
1. 账号级配置 (accounts.<id>.accessToken / token)
2. 基础层配置 (channels.twitch.accessToken / token)
3. 环境变量 TWITCH_ACCESS_TOKEN（仅 default 账号）

Token 带 "oauth:" 前缀时去掉一次。
"""
import os
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Optional

from .config import DEFAULT_ACCOUNT_ID, get_raw_accounts, get_twitch_section

TOKEN_ENV_VAR = "TWITCH_ACCESS_TOKEN"

# 可去掉的前缀（区分大小写）
OAUTH_PREFIX = "oauth:"

TokenSource = Literal["config", "env", "none"]


@dataclass(frozen=True)
class TokenResolution:
    """Token 解析结果（每次连接时重新计算，不持久化）"""
    token: Optional[str]
    source: TokenSource


def normalize_token(raw: str | None) -> str:
    """去掉首尾空白，再去掉一次 oauth: 前缀"""
    if not raw:
        return ""
    trimmed = raw.strip()
    if trimmed.startswith(OAUTH_PREFIX):
        return trimmed[len(OAUTH_PREFIX):]
    return trimmed


def has_oauth_prefix(raw: str | None) -> bool:
    return bool(raw) and raw.strip().startswith(OAUTH_PREFIX)


def _token_from(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    for key in ("accessToken", "token"):
        value = data.get(key)
        if isinstance(value, str):
            normalized = normalize_token(value)
            if normalized:
                return normalized
    return ""


def resolve_twitch_token(
    cfg: Any,
    account_id: str | None = None,
    env: Mapping[str, str] | None = None,
) -> TokenResolution:
    """
    解析账号 Token

    Args:
        cfg: 配置树
        account_id: 账号 ID（默认 default）
        env: 环境变量映射（默认 os.environ）

    Returns:
        TokenResolution，找不到时 token 为 None、source 为 "none"
    """
    account_id = account_id or DEFAULT_ACCOUNT_ID

    token = _token_from(get_raw_accounts(cfg).get(account_id))
    if token:
        return TokenResolution(token=token, source="config")

    token = _token_from(get_twitch_section(cfg))
    if token:
        return TokenResolution(token=token, source="config")

    # 环境变量兜底只对 default 账号生效
    if account_id == DEFAULT_ACCOUNT_ID:
        env = os.environ if env is None else env
        token = normalize_token(env.get(TOKEN_ENV_VAR))
        if token:
            return TokenResolution(token=token, source="env")

    return TokenResolution(token=None, source="none")
