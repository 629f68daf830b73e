"""
Twitch Dispatch 配置管理

配置结构（JSON 文件，只读使用）:

    {
        "channels": {
            "twitch": {
                "enabled": true,
                "clientId": "...",              # 基础层字段，各账号继承
                "accounts": {
                    "default": {"username": "mybot", "accessToken": "oauth:...", ...}
                }
            }
        },
        "pluginConfig": {"stripMarkdown": true},
        "agent": {"url": "...", "apiKey": "...", "timeout": 300}
    }

账号配置每次查询都从配置树重新读取，不做缓存。

环境变量:
    TWITCH_CONFIG_FILE: 配置文件路径（默认 data/twitch_config.json）
    TWITCH_PORT: 服务端口
    TWITCH_AGENT_URL / TWITCH_AGENT_API_KEY / TWITCH_AGENT_TIMEOUT: Agent 转发配置
    TWITCH_ACCESS_TOKEN: default 账号的兜底 Token（见 token.py）
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# 默认账号 ID
DEFAULT_ACCOUNT_ID = "default"

# 默认超时时间（秒）
DEFAULT_TIMEOUT = 300

DEFAULT_CONFIG_FILE = "data/twitch_config.json"

# 频道级别的字段，不作为账号的继承字段
_SECTION_ONLY_KEYS = {"accounts", "enabled"}

_TOKEN_KEYS = ("accessToken", "token")


# ============== 账号配置 ==============

class AccountConfig:
    """单个 Bot 身份在一个频道上的配置"""
    def __init__(
        self,
        account_id: str,
        username: str = "",
        token: str | None = None,
        client_id: str | None = None,
        channel: str | None = None,
        enabled: bool = True,
        allow_from: list[str] | None = None,
        allowed_roles: list[str] | None = None,
        require_mention: bool = False,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        expires_in: int | None = None,
        obtainment_timestamp: int | None = None,
    ):
        self.account_id = account_id
        self.username = username
        self.token = token
        self.client_id = client_id
        self.channel = channel
        self.enabled = enabled
        self.allow_from = allow_from
        self.allowed_roles = allowed_roles
        self.require_mention = require_mention
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.expires_in = expires_in
        self.obtainment_timestamp = obtainment_timestamp

    @property
    def target_channel(self) -> str:
        """要加入的频道，未配置时默认为 username"""
        return self.channel or self.username

    def copy_with(self, **changes) -> "AccountConfig":
        """返回替换了部分字段的副本"""
        data = dict(self.__dict__)
        data.update(changes)
        return AccountConfig(**data)

    def to_dict(self) -> dict:
        return {
            "accountId": self.account_id,
            "username": self.username,
            "channel": self.target_channel,
            "clientId": self.client_id,
            "enabled": self.enabled,
            "allowFrom": self.allow_from,
            "allowedRoles": self.allowed_roles,
            "requireMention": self.require_mention,
            "hasClientSecret": bool(self.client_secret),
            "hasRefreshToken": bool(self.refresh_token),
        }

    @classmethod
    def from_dict(cls, account_id: str, data: dict) -> "AccountConfig":
        """从配置字典创建 AccountConfig（字段名为 camelCase）"""
        token = data.get("accessToken") or data.get("token")
        return cls(
            account_id=account_id,
            username=str(data.get("username") or "").strip(),
            token=token if isinstance(token, str) else None,
            client_id=data.get("clientId") or None,
            channel=data.get("channel") or None,
            enabled=data.get("enabled") is not False,
            allow_from=_string_list(data.get("allowFrom")),
            allowed_roles=_string_list(data.get("allowedRoles")),
            require_mention=bool(data.get("requireMention", False)),
            client_secret=data.get("clientSecret") or None,
            refresh_token=data.get("refreshToken") or None,
            expires_in=data.get("expiresIn"),
            obtainment_timestamp=data.get("obtainmentTimestamp"),
        )


class PluginConfig:
    """插件级配置"""
    def __init__(self, strip_markdown: bool = True):
        self.strip_markdown = strip_markdown

    def to_dict(self) -> dict:
        return {"stripMarkdown": self.strip_markdown}


def _string_list(value: Any) -> list[str] | None:
    """None 表示未配置；空列表表示配置了但为空（状态检查需要区分两者）"""
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    return [str(item).strip() for item in value if str(item).strip()]


# ============== 配置树读取 ==============

def get_twitch_section(cfg: Any) -> dict:
    """获取 channels.twitch 配置段"""
    if not isinstance(cfg, dict):
        return {}
    channels = cfg.get("channels")
    if not isinstance(channels, dict):
        return {}
    section = channels.get("twitch")
    return section if isinstance(section, dict) else {}


def get_base_account_fields(section: dict) -> dict:
    """基础层字段（所有账号共享）"""
    return {k: v for k, v in section.items() if k not in _SECTION_ONLY_KEYS}


def _own_token(data: dict) -> str | None:
    """配置段自身的 Token（accessToken 优先于 token）"""
    for key in _TOKEN_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def get_raw_accounts(cfg: Any) -> dict:
    accounts = get_twitch_section(cfg).get("accounts")
    return accounts if isinstance(accounts, dict) else {}


def list_account_ids(cfg: Any) -> list[str]:
    """
    列出所有账号 ID

    基础层配置了 username 时，default 账号隐式存在。
    """
    ids = list(get_raw_accounts(cfg).keys())
    section = get_twitch_section(cfg)
    if DEFAULT_ACCOUNT_ID not in ids and section.get("username"):
        ids.insert(0, DEFAULT_ACCOUNT_ID)
    return ids


def get_account_config(cfg: Any, account_id: str | None = None) -> Optional[AccountConfig]:
    """
    解析账号配置（账号字段覆盖基础层字段）

    Returns:
        AccountConfig，账号不存在时返回 None
    """
    account_id = account_id or DEFAULT_ACCOUNT_ID
    section = get_twitch_section(cfg)
    base = get_base_account_fields(section)
    accounts = get_raw_accounts(cfg)

    raw = accounts.get(account_id)
    if isinstance(raw, dict):
        merged = {**base, **raw}
        # 账号自己的 Token（任一字段名）优先于基础层 Token
        token = _own_token(raw) or _own_token(base)
        for key in _TOKEN_KEYS:
            merged.pop(key, None)
        if token:
            merged["accessToken"] = token
    elif account_id == DEFAULT_ACCOUNT_ID and base.get("username"):
        merged = base
    else:
        return None

    return AccountConfig.from_dict(account_id, merged)


def parse_plugin_config(value: Any) -> PluginConfig:
    """解析插件配置，stripMarkdown 非布尔值时按 True 处理"""
    if not isinstance(value, dict):
        return PluginConfig(strip_markdown=True)
    strip = value.get("stripMarkdown")
    return PluginConfig(strip_markdown=strip if isinstance(strip, bool) else True)


def is_channel_enabled(cfg: Any) -> bool:
    """功能级开关 channels.twitch.enabled（默认开启）"""
    return get_twitch_section(cfg).get("enabled") is not False


def is_account_configured(account: AccountConfig | None) -> bool:
    """账号需要 username、token、clientId 三者齐全"""
    return bool(account and account.username and account.token and account.client_id)


# ============== 服务配置 ==============

class ServiceConfig:
    """
    服务配置

    从 JSON 文件加载配置树，服务级参数可由环境变量覆盖。
    """

    def __init__(self, config_file: str | None = None):
        self.config_file = config_file
        self.port: int = 8084
        self.agent_url: str = ""
        self.agent_api_key: str = ""
        self.agent_timeout: int = DEFAULT_TIMEOUT
        self.tree: dict = {}

    def initialize(self) -> None:
        """加载配置文件与环境变量"""
        path = Path(self.config_file or os.getenv("TWITCH_CONFIG_FILE", DEFAULT_CONFIG_FILE))
        self.tree = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    self.tree = json.load(f)
                logger.info(f"已从 JSON 文件加载配置: {path}")
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"加载配置文件失败: {e}")
        else:
            logger.warning(f"配置文件不存在: {path}")

        agent = self.tree.get("agent") if isinstance(self.tree.get("agent"), dict) else {}
        self.agent_url = agent.get("url", "")
        self.agent_api_key = agent.get("apiKey", "")
        self.agent_timeout = int(agent.get("timeout", DEFAULT_TIMEOUT))

        # 环境变量覆盖（优先级最高）
        if port := os.getenv("TWITCH_PORT"):
            self.port = int(port)
        if agent_url := os.getenv("TWITCH_AGENT_URL"):
            self.agent_url = agent_url
        if api_key := os.getenv("TWITCH_AGENT_API_KEY"):
            self.agent_api_key = api_key
        if timeout := os.getenv("TWITCH_AGENT_TIMEOUT"):
            self.agent_timeout = int(timeout)

    def load_dict(self, tree: dict) -> None:
        """直接使用内存中的配置树（测试与嵌入场景）"""
        self.tree = tree

    def get_cfg(self) -> dict:
        return self.tree

    @property
    def plugin_config(self) -> PluginConfig:
        return parse_plugin_config(self.tree.get("pluginConfig"))

    def validate(self) -> list[str]:
        """返回配置问题列表（仅提示，不阻止启动）"""
        errors = []
        if not self.agent_url:
            errors.append("未配置 Agent URL (agent.url 或 TWITCH_AGENT_URL)")
        if not list_account_ids(self.tree):
            errors.append("未配置任何 Twitch 账号 (channels.twitch.accounts)")
        return errors


# 全局配置实例
config = ServiceConfig()
