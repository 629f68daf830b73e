"""
消息分拆器

Twitch 单条聊天消息最多 500 字符，过长的回复按词边界分拆。
分拆前先去除 Markdown，避免把格式标记切断。
"""
import logging

from .utils.markdown import strip_markdown_for_twitch

logger = logging.getLogger(__name__)

# Twitch 单条消息最大字符数
TWITCH_TEXT_CHUNK_LIMIT = 500


def split_at_word_boundary(text: str, limit: int) -> list[str]:
    """
    按词边界分拆文本

    每次取 limit 个字符的窗口，在窗口内最后一个空格处断开（空格本身丢弃）；
    窗口内没有空格时在 limit 处硬切。
    """
    if not text:
        return []
    if limit <= 0 or len(text) <= limit:
        return [text]

    chunks = []
    remaining = text
    while len(remaining) > limit:
        window = remaining[:limit]
        last_space = window.rfind(" ")
        if last_space == 0:
            # 连续空格时窗口开头的空格就是分隔符
            remaining = remaining[1:]
        elif last_space < 0:
            chunks.append(window)
            remaining = remaining[limit:]
            # 硬切正好落在空格前，这个空格就是分隔符
            if remaining.startswith(" "):
                remaining = remaining[1:]
        else:
            chunks.append(window[:last_space])
            remaining = remaining[last_space + 1:]

    if remaining:
        chunks.append(remaining)
    return chunks


def chunk_text_for_twitch(
    text: str,
    limit: int = TWITCH_TEXT_CHUNK_LIMIT,
    strip_markdown: bool = True,
) -> list[str]:
    """
    去除 Markdown 后分拆

    Returns:
        分拆后的消息列表；清洗后为空时返回空列表
    """
    cleaned = strip_markdown_for_twitch(text) if strip_markdown else (text or "").strip()
    chunks = split_at_word_boundary(cleaned, limit)
    if len(chunks) > 1:
        logger.debug(f"消息分拆为 {len(chunks)} 段 (limit={limit})")
    return chunks
