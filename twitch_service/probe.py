"""
Twitch 连接探测

在限定时间内尝试建立一次独立的聊天连接，验证 Token 与网络是否可用。
无论成功、超时还是出错，打开的连接都会被关闭。
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .auth import StaticAuthProvider
from .clients.base import ChatTransport, TransportFactory, create_chat_transport
from .config import AccountConfig
from .token import normalize_token
from .utils.twitch import format_error, now_ms

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_MS = 10_000

# 连接建立后再等待一会儿，确认连接稳定
PROBE_SETTLE_SECONDS = 0.5

MISSING_CREDENTIALS_ERROR = "missing credentials (token, username)"


@dataclass
class ProbeResult:
    ok: bool
    elapsed_ms: int
    error: Optional[str] = None
    username: Optional[str] = None
    connected: Optional[bool] = None
    channel: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"ok": self.ok, "elapsedMs": self.elapsed_ms}
        for key, value in (
            ("error", self.error),
            ("username", self.username),
            ("connected", self.connected),
            ("channel", self.channel),
        ):
            if value is not None:
                data[key] = value
        return data


async def probe_twitch(
    account: AccountConfig,
    timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
    transport_factory: Optional[TransportFactory] = None,
) -> ProbeResult:
    """
    探测账号连接

    Args:
        account: 账号配置（token 为已解析的 Token）
        timeout_ms: 超时时间（毫秒）
        transport_factory: 传输层工厂（默认 pydle）

    Returns:
        ProbeResult
    """
    started = now_ms()

    if not account.token or not account.username:
        return ProbeResult(
            ok=False,
            error=MISSING_CREDENTIALS_ERROR,
            username=account.username or None,
            elapsed_ms=now_ms() - started,
        )

    factory = transport_factory or create_chat_transport
    channel = account.target_channel
    client: Optional[ChatTransport] = None

    try:
        auth_provider = StaticAuthProvider(account.client_id or "", normalize_token(account.token))
        client = factory(
            auth_provider=auth_provider,
            username=account.username,
            channels=[],
            rejoin_channels_on_reconnect=False,
        )

        try:
            await asyncio.wait_for(client.connect(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise TimeoutError(f"connection timeout after {timeout_ms}ms")

        await asyncio.sleep(PROBE_SETTLE_SECONDS)

        logger.info(f"[twitch] 探测成功: {account.username}, 耗时 {now_ms() - started}ms")
        return ProbeResult(
            ok=True,
            connected=True,
            username=account.username,
            channel=channel,
            elapsed_ms=now_ms() - started,
        )
    except Exception as e:
        error = format_error(e)
        logger.warning(f"[twitch] 探测失败: {account.username}, {error}")
        return ProbeResult(
            ok=False,
            error=error,
            username=account.username,
            channel=channel,
            elapsed_ms=now_ms() - started,
        )
    finally:
        if client is not None:
            try:
                await client.quit()
            except Exception as e:
                logger.debug(f"[twitch] 关闭探测连接失败: {e}")
