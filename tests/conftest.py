"""
pytest 配置文件
"""
import asyncio
import sys
from pathlib import Path

import pytest

# 将包目录添加到 Python 路径
pkg_root = Path(__file__).parent.parent
if str(pkg_root) not in sys.path:
    sys.path.insert(0, str(pkg_root))

from twitch_service.clients.base import ChatMessageMeta, ChatTransport, ChatUserInfo  # noqa: E402


# ============== 传输层 Fixtures ==============

class FakeTransport(ChatTransport):
    """记录调用的内存传输层"""

    def __init__(self, *args, connect_delay: float = 0, connect_error: BaseException | None = None,
                 hang: bool = False, say_error: BaseException | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.connect_delay = connect_delay
        self.connect_error = connect_error
        self.hang = hang
        self.say_error = say_error
        self.connect_calls = 0
        self.quit_calls = 0
        self.sent: list[tuple[str, str]] = []
        self.joined: list[str] = []

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.hang:
            await asyncio.Event().wait()
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            raise self.connect_error

    async def join(self, channel: str) -> None:
        self.joined.append(channel)

    async def say(self, channel: str, text: str) -> None:
        if self.say_error is not None:
            raise self.say_error
        # 让出控制权，暴露潜在的乱序发送
        await asyncio.sleep(0)
        self.sent.append((channel, text))

    async def quit(self) -> None:
        self.quit_calls += 1


class FakeTransportFactory:
    """创建 FakeTransport 并记录所有实例"""

    def __init__(self, **transport_kwargs):
        self.transport_kwargs = transport_kwargs
        self.created: list[FakeTransport] = []

    def __call__(self, *, auth_provider, username, channels, rejoin_channels_on_reconnect=True):
        transport = FakeTransport(
            auth_provider,
            username,
            channels,
            rejoin_channels_on_reconnect,
            **self.transport_kwargs,
        )
        self.created.append(transport)
        return transport


def make_meta(
    user_name: str = "viewer",
    user_id: str | None = "1001",
    message_id: str | None = "msg-1",
    **roles,
) -> ChatMessageMeta:
    return ChatMessageMeta(
        user_info=ChatUserInfo(
            user_name=user_name,
            display_name=user_name.capitalize(),
            user_id=user_id,
            **roles,
        ),
        id=message_id,
    )


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def twitch_cfg():
    """单个 default 账号的配置树"""
    return {
        "channels": {
            "twitch": {
                "accounts": {
                    "default": {
                        "username": "testbot",
                        "accessToken": "oauth:abc123",
                        "clientId": "client-1",
                        "channel": "streamer",
                    }
                }
            }
        }
    }
