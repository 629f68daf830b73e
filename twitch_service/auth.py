"""
Twitch 认证策略

两种策略共享同一能力：按需提供可用的 Bearer Token。
- StaticAuthProvider: 直接包装 Token，无刷新能力
- RefreshingAuthProvider: 带 clientSecret，可通过 refreshToken 自动刷新，
  并提供刷新成功/失败事件订阅
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Callable, Optional

import httpx

from .utils.twitch import now_ms

logger = logging.getLogger(__name__)

TWITCH_OAUTH_VALIDATE_URL = "https://id.twitch.tv/oauth2/validate"
TWITCH_OAUTH_TOKEN_URL = "https://id.twitch.tv/oauth2/token"

# 提前刷新的余量（毫秒）
EXPIRY_MARGIN_MS = 60_000

RefreshHandler = Callable[[str, "AccessToken"], None]
RefreshFailureHandler = Callable[[str, BaseException], None]


class TwitchAuthError(Exception):
    """认证相关错误（校验失败、刷新失败）"""


@dataclass
class AccessToken:
    """Token 数据（时间戳单位为毫秒）"""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    obtainment_timestamp: int = 0

    def is_expired(self, at_ms: int | None = None) -> bool:
        if not self.expires_in:
            return False
        at_ms = now_ms() if at_ms is None else at_ms
        return at_ms >= self.obtainment_timestamp + self.expires_in * 1000 - EXPIRY_MARGIN_MS


class AuthProvider:
    """认证策略基类"""

    kind = "base"

    def __init__(self, client_id: str):
        self.client_id = client_id

    async def get_access_token(self) -> str:
        raise NotImplementedError


class StaticAuthProvider(AuthProvider):
    """静态 Token，无刷新能力"""

    kind = "static"

    def __init__(self, client_id: str, token: str):
        super().__init__(client_id)
        self._token = token

    async def get_access_token(self) -> str:
        return self._token


class RefreshingAuthProvider(AuthProvider):
    """
    可刷新的 Token 策略

    没有 refreshToken 时刷新在结构上被禁用：Token 作为长期静态凭证使用，
    直到人工轮换。
    """

    kind = "refreshing"

    def __init__(self, client_id: str, client_secret: str, http_timeout: float = 30.0):
        super().__init__(client_id)
        self.client_secret = client_secret
        self.http_timeout = http_timeout
        self.user_id: Optional[str] = None
        self._token: Optional[AccessToken] = None
        self._refresh_handlers: list[RefreshHandler] = []
        self._failure_handlers: list[RefreshFailureHandler] = []
        self._refresh_lock = asyncio.Lock()

    @property
    def refresh_enabled(self) -> bool:
        return bool(self._token and self._token.refresh_token)

    @property
    def current_token(self) -> Optional[AccessToken]:
        return self._token

    def on_refresh(self, handler: RefreshHandler) -> None:
        """订阅 Token 刷新成功事件: handler(user_id, token)"""
        self._refresh_handlers.append(handler)

    def on_refresh_failure(self, handler: RefreshFailureHandler) -> None:
        """订阅 Token 刷新失败事件: handler(user_id, error)"""
        self._failure_handlers.append(handler)

    def add_user_for_token(self, token: AccessToken) -> "asyncio.Task[str]":
        """
        登记 Token，并在后台校验出对应的用户 ID

        Token 立即可用；返回的 Task 结果为用户 ID，校验失败时抛出 TwitchAuthError。
        """
        self._token = token
        return asyncio.ensure_future(self._identify_user(token))

    async def _identify_user(self, token: AccessToken) -> str:
        info = await validate_access_token(token.access_token, timeout=self.http_timeout)
        user_id = str(info.get("user_id") or "")
        if not user_id:
            raise TwitchAuthError("Token 校验结果中没有 user_id")
        self.user_id = user_id
        if token.expires_in is None and info.get("expires_in"):
            self._token = replace(token, expires_in=int(info["expires_in"]))
        return user_id

    async def get_access_token(self) -> str:
        if self._token is None:
            raise TwitchAuthError("RefreshingAuthProvider 尚未登记 Token")
        if self.refresh_enabled and self._token.is_expired():
            await self.refresh()
        return self._token.access_token

    async def refresh(self) -> AccessToken:
        """使用 refreshToken 换取新 Token，并触发刷新事件"""
        async with self._refresh_lock:
            token = self._token
            user_id = self.user_id or ""
            if token is None or not token.refresh_token:
                raise TwitchAuthError("没有 refreshToken，无法刷新")

            try:
                data = {
                    "grant_type": "refresh_token",
                    "refresh_token": token.refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                }
                async with httpx.AsyncClient(timeout=self.http_timeout) as client:
                    response = await client.post(TWITCH_OAUTH_TOKEN_URL, data=data)
                if response.status_code != 200:
                    raise TwitchAuthError(
                        f"刷新 Token 失败: status={response.status_code}, body={response.text[:200]}"
                    )
                payload = response.json()
                new_token = AccessToken(
                    access_token=payload["access_token"],
                    refresh_token=payload.get("refresh_token") or token.refresh_token,
                    expires_in=payload.get("expires_in"),
                    obtainment_timestamp=now_ms(),
                )
            except Exception as e:
                for handler in self._failure_handlers:
                    handler(user_id, e)
                raise

            self._token = new_token
            for handler in self._refresh_handlers:
                handler(user_id, new_token)
            return new_token


async def validate_access_token(access_token: str, timeout: float = 30.0) -> dict:
    """
    校验 Token

    Returns:
        {"client_id", "login", "user_id", "scopes", "expires_in"}
    """
    headers = {"Authorization": f"OAuth {access_token}"}
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(TWITCH_OAUTH_VALIDATE_URL, headers=headers)
    if response.status_code != 200:
        raise TwitchAuthError(f"Token 校验失败: status={response.status_code}")
    return response.json()
