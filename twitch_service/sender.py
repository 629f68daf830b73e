"""
消息发送模块

功能：
- Markdown 去除：Twitch 聊天只支持纯文本
- 消息分拆：超过 500 字符时按词边界分拆
- 顺序发送：同一条回复的各段逐条 await，保证频道内的显示顺序
"""
import logging
from typing import Any

from .client_manager import TwitchClientManager
from .config import DEFAULT_ACCOUNT_ID, AccountConfig, get_account_config, list_account_ids
from .message_splitter import TWITCH_TEXT_CHUNK_LIMIT, chunk_text_for_twitch
from .models import SendResult
from .token import resolve_twitch_token
from .utils.twitch import format_error, generate_message_id, normalize_twitch_channel

logger = logging.getLogger(__name__)

# 清洗后无内容时返回的消息 ID
SKIPPED_MESSAGE_ID = "skipped"


async def send_reply(
    client_manager: TwitchClientManager,
    account: AccountConfig,
    channel: str,
    text: str,
    cfg: Any = None,
    account_id: str | None = None,
    strip_markdown: bool = True,
    limit: int = TWITCH_TEXT_CHUNK_LIMIT,
) -> SendResult:
    """
    发送回复消息

    消息过长时分拆成多条，逐条发送；任意一条失败即停止，
    parts_sent 为已成功发送的条数。

    Returns:
        SendResult，message_id 为最后一条成功发送的消息 ID
    """
    chunks = chunk_text_for_twitch(text, limit, strip_markdown=strip_markdown)
    if not chunks:
        return SendResult(ok=True, message_id=SKIPPED_MESSAGE_ID)

    if len(chunks) > 1:
        logger.info(f"消息过长，分拆为 {len(chunks)} 条: channel={channel}")

    last_id = ""
    for index, chunk in enumerate(chunks):
        result = await client_manager.send_message(account, channel, chunk, cfg, account_id)
        if not result.ok:
            logger.error(f"分拆消息发送失败: part={index + 1}/{len(chunks)}, error={result.error}")
            return SendResult(
                ok=False,
                message_id=result.message_id,
                error=result.error,
                parts_sent=index,
            )
        last_id = result.message_id

    return SendResult(ok=True, message_id=last_id, parts_sent=len(chunks))


async def send_message_twitch_internal(
    channel: str,
    text: str,
    cfg: Any,
    client_manager: TwitchClientManager,
    account_id: str = DEFAULT_ACCOUNT_ID,
    strip_markdown: bool = True,
) -> SendResult:
    """
    出站发送入口（带账号解析）

    Args:
        channel: 频道名（可带 # 前缀，为空时使用账号的默认频道）
        text: 消息内容
        cfg: 配置树
        client_manager: 连接管理器
        account_id: 账号 ID
        strip_markdown: 是否去除 Markdown
    """
    account = get_account_config(cfg, account_id)
    if account is None:
        available = ", ".join(list_account_ids(cfg)) or "none"
        return SendResult(
            ok=False,
            message_id=generate_message_id(),
            error=f"账号不存在: {account_id}。可用账号: {available}",
        )

    resolution = resolve_twitch_token(cfg, account_id, client_manager.env)
    if not (account.username and resolution.token and account.client_id):
        return SendResult(
            ok=False,
            message_id=generate_message_id(),
            error=f"账号 {account_id} 配置不完整，需要: username, token, clientId",
        )

    target = channel or account.channel or account.username
    if not target:
        return SendResult(
            ok=False,
            message_id=generate_message_id(),
            error="未指定频道，且账号没有默认频道",
        )

    try:
        return await send_reply(
            client_manager,
            account,
            normalize_twitch_channel(target),
            text,
            cfg=cfg,
            account_id=account_id,
            strip_markdown=strip_markdown,
        )
    except Exception as e:
        logger.error(f"[twitch] 发送消息失败: {e}", exc_info=True)
        return SendResult(ok=False, message_id=generate_message_id(), error=format_error(e))


async def send_media_twitch(
    channel: str,
    media_url: str,
    cfg: Any,
    client_manager: TwitchClientManager,
    text: str = "",
    account_id: str = DEFAULT_ACCOUNT_ID,
) -> SendResult:
    """Twitch 聊天不支持上传媒体，把 URL 附在文本后发送"""
    combined = f"{text} {media_url}".strip() if text else media_url
    return await send_message_twitch_internal(
        channel, combined, cfg, client_manager, account_id=account_id, strip_markdown=False
    )
