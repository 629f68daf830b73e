"""
Twitch Dispatch Service

将 Twitch 聊天频道接入 Agent 平台：
- 每个账号维护一条聊天连接（ConnectionKey = username:channel）
- 入站消息经访问控制后转发到 Agent
- Agent 回复去除 Markdown、分段后按顺序发送回频道
"""

__version__ = "0.1.0"
