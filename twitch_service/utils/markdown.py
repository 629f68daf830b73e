"""
Markdown 去除工具

Twitch 聊天不支持 Markdown，且是单行消息，发送前需要转成纯文本。
这是有损的单向转换。
"""
import re

_IMAGE = re.compile(r"!\[[^\]]*]\([^)]+\)")
_LINK = re.compile(r"\[([^\]]+)]\([^)]+\)")
_BOLD_STARS = re.compile(r"\*\*([^*]+)\*\*")
_BOLD_UNDERSCORES = re.compile(r"__([^_]+)__")
_ITALIC_STAR = re.compile(r"\*([^*]+)\*")
_ITALIC_UNDERSCORE = re.compile(r"_([^_]+)_")
_STRIKETHROUGH = re.compile(r"~~([^~]+)~~")
_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_CODE_FENCE_LINE = re.compile(r"```[^\n]*\n?")
_INLINE_CODE = re.compile(r"`([^`]+)`")
_HEADER = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_UNORDERED_LIST = re.compile(r"^\s*[-*+]\s+", re.MULTILINE)
_ORDERED_LIST = re.compile(r"^\s*\d+\.\s+", re.MULTILINE)


def _unwrap_code_block(match: re.Match) -> str:
    block = _CODE_FENCE_LINE.sub("", match.group(0))
    return block.replace("```", "")


def strip_markdown_for_twitch(markdown: str) -> str:
    """
    去除 Markdown 格式

    去掉图片；链接、粗体、斜体、删除线、代码块、行内代码只保留内容；
    去掉标题和列表标记；换行替换为空格，连续空白合并为一个空格。
    """
    text = markdown or ""

    text = _IMAGE.sub("", text)
    text = _LINK.sub(r"\1", text)
    text = _BOLD_STARS.sub(r"\1", text)
    text = _BOLD_UNDERSCORES.sub(r"\1", text)
    text = _ITALIC_STAR.sub(r"\1", text)
    text = _ITALIC_UNDERSCORE.sub(r"\1", text)
    text = _STRIKETHROUGH.sub(r"\1", text)
    text = _CODE_BLOCK.sub(_unwrap_code_block, text)
    text = _INLINE_CODE.sub(r"\1", text)
    text = _HEADER.sub("", text)
    text = _UNORDERED_LIST.sub("", text)
    text = _ORDERED_LIST.sub("", text)

    # 单行消息：换行变空格
    text = text.replace("\r", "")
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = text.replace("\n", " ")
    text = re.sub(r"[ \t]{2,}", " ", text)
    return text.strip()
