"""
Twitch 通用工具函数
"""
import time
import uuid


def now_ms() -> int:
    """当前时间戳（毫秒）"""
    return int(time.time() * 1000)


def generate_message_id() -> str:
    """
    生成本地唯一的消息 ID

    聊天连接的 say() 不返回消息 ID，所以发送时自行生成，仅用于追踪。
    """
    return f"{now_ms()}-{uuid.uuid4().hex[:12]}"


def normalize_twitch_channel(channel: str) -> str:
    """规范化频道名：去掉 # 前缀并转小写"""
    trimmed = (channel or "").strip()
    if trimmed.startswith("#"):
        trimmed = trimmed[1:]
    return trimmed.lower()


def format_error(error: object) -> str:
    """把任意错误值转成可上报的字符串"""
    if isinstance(error, BaseException):
        message = str(error)
        return message or type(error).__name__
    return str(error)
