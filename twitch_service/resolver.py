"""
Twitch 用户名 / 用户 ID 解析

通过 Helix API (GET /helix/users) 把用户名解析为永久用户 ID，
或校验纯数字输入是否为存在的用户 ID。allowFrom 白名单需要的就是这个 ID。
"""
import logging
import re
from dataclasses import dataclass
from typing import Literal, Optional

import httpx

from .config import AccountConfig
from .token import normalize_token
from .utils.twitch import format_error

logger = logging.getLogger(__name__)

HELIX_USERS_URL = "https://api.twitch.tv/helix/users"

ResolveKind = Literal["user", "group"]

_NUMERIC_ID = re.compile(r"^\d+$")


@dataclass
class ResolveResult:
    input: str
    resolved: bool
    id: Optional[str] = None
    name: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"input": self.input, "resolved": self.resolved}
        for key in ("id", "name", "note"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


def normalize_username(value: str) -> str:
    """去掉 @ 前缀并转小写"""
    trimmed = (value or "").strip()
    if trimmed.startswith("@"):
        trimmed = trimmed[1:]
    return trimmed.lower()


async def _fetch_user(client: httpx.AsyncClient, normalized: str, by_id: bool) -> dict | None:
    params = {"id": normalized} if by_id else {"login": normalized}
    response = await client.get(HELIX_USERS_URL, params=params)
    response.raise_for_status()
    users = response.json().get("data") or []
    return users[0] if users else None


async def resolve_twitch_targets(
    inputs: list[str],
    account: AccountConfig,
    kind: ResolveKind = "user",
    http_client: httpx.AsyncClient | None = None,
) -> list[ResolveResult]:
    """
    批量解析用户名 / 用户 ID

    Args:
        inputs: 用户名（可带 @）或数字用户 ID
        account: 提供 clientId 和 Token 的账号
        kind: 目标类型（Twitch 的用户和频道共用同一套 ID）
        http_client: 可选的 httpx 客户端（需已带认证头）

    Returns:
        与 inputs 一一对应的 ResolveResult 列表
    """
    token = normalize_token(account.token)
    if not account.client_id or not token:
        logger.error("[twitch] 缺少 Twitch Client ID 或 Token，无法解析")
        return [ResolveResult(input=value, resolved=False, note="missing Twitch credentials") for value in inputs]

    headers = {"Client-Id": account.client_id, "Authorization": f"Bearer {token}"}
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(headers=headers, timeout=httpx.Timeout(30.0))

    results: list[ResolveResult] = []
    try:
        for value in inputs:
            normalized = normalize_username(value)
            if not normalized:
                results.append(ResolveResult(input=value, resolved=False, note="empty input"))
                continue

            by_id = bool(_NUMERIC_ID.match(normalized))
            try:
                user = await _fetch_user(client, normalized, by_id)
            except Exception as e:
                error = format_error(e)
                logger.error(f"[twitch] 解析 {value} 失败: {error}")
                results.append(ResolveResult(input=value, resolved=False, note=f"API error: {error}"))
                continue

            if user is None:
                note = "user ID not found" if by_id else "username not found"
                logger.warning(f"[twitch] {kind} {normalized} 不存在")
                results.append(ResolveResult(input=value, resolved=False, note=note))
                continue

            login = user.get("login")
            display_name = user.get("display_name")
            note = None
            if not by_id and display_name and display_name != login:
                note = f"display: {display_name}"
            results.append(ResolveResult(input=value, resolved=True, id=user.get("id"), name=login, note=note))
            logger.debug(f"[twitch] 已解析 {normalized} -> {user.get('id')} ({login})")
    finally:
        if owns_client:
            await client.aclose()

    return results
