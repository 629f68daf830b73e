"""
数据模型

入站消息与发送结果，均为运行期对象，不持久化。
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional

ChatType = Literal["group", "direct"]


@dataclass
class InboundMessage:
    """规范化后的入站消息"""
    username: str
    message: str
    channel: str
    user_id: Optional[str] = None
    display_name: Optional[str] = None
    id: Optional[str] = None  # 私信没有 id
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_mod: bool = False
    is_owner: bool = False
    is_vip: bool = False
    is_sub: bool = False
    chat_type: ChatType = "group"


@dataclass
class SendResult:
    """发送结果"""
    ok: bool
    message_id: str = ""
    error: Optional[str] = None
    parts_sent: int = 0

    def to_dict(self) -> dict:
        data = {"ok": self.ok, "messageId": self.message_id}
        if self.error is not None:
            data["error"] = self.error
        return data
