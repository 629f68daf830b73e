"""
Twitch 工具动作

目前只有一个动作 "send"：向频道发送消息。
结果以 {"content": [{"type": "text", "text": <JSON>}]} 的形式返回给调用方。
"""
import json
import logging
from typing import Any, Optional

from .client_manager import TwitchClientManager
from .config import DEFAULT_ACCOUNT_ID
from .sender import send_message_twitch_internal
from .utils.twitch import format_error

logger = logging.getLogger(__name__)

SEND_ACTION = "send"


class ActionParamError(ValueError):
    """缺少必需的动作参数"""


def read_string_param(args: dict, key: str, required: bool = False, trim: bool = True) -> Optional[str]:
    value = args.get(key)
    if value is None:
        if required:
            raise ActionParamError(f"缺少必需参数: {key}")
        return None
    text = str(value)
    return text.strip() if trim else text


def list_actions(cfg: Any = None) -> list[str]:
    return [SEND_ACTION]


def supports_action(action: str) -> bool:
    return action == SEND_ACTION


def extract_tool_send(args: dict) -> dict | None:
    """
    从工具参数中提取发送目标与内容

    Returns:
        {"to": ..., "message": ...}；参数缺失或为空时返回 None
    """
    try:
        to = read_string_param(args, "to", required=True)
        message = read_string_param(args, "message", required=True)
    except ActionParamError:
        return None
    if not to or not message:
        return None
    return {"to": to, "message": message}


def _text_result(payload: dict) -> dict:
    return {"content": [{"type": "text", "text": json.dumps(payload, ensure_ascii=False)}]}


async def handle_action(
    action: str,
    params: dict,
    cfg: Any,
    client_manager: TwitchClientManager,
    account_id: str | None = None,
    strip_markdown: bool = True,
) -> dict | None:
    """
    执行动作

    Returns:
        工具结果；不支持的动作返回 None
    """
    if not supports_action(action):
        return None

    try:
        message = read_string_param(params, "message", required=True)
        to = read_string_param(params, "to")
    except ActionParamError as e:
        return _text_result({"ok": False, "error": str(e)})

    account_id = account_id or DEFAULT_ACCOUNT_ID
    logger.info(f"[twitch] 执行动作 {action}: account={account_id}, to={to or '(默认频道)'}")

    try:
        result = await send_message_twitch_internal(
            to or "",
            message or "",
            cfg,
            client_manager,
            account_id=account_id,
            strip_markdown=strip_markdown,
        )
    except Exception as e:
        logger.error(f"[twitch] 动作执行失败: {e}", exc_info=True)
        return _text_result({"ok": False, "error": format_error(e)})

    return _text_result(result.to_dict())
