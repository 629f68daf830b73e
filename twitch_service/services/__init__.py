"""
服务模块
"""
from .forwarder import (
    AgentRoute,
    AgentRouter,
    HttpAgentRouter,
    InboundContext,
    ReplyPayload,
    RoutePeer,
)

__all__ = [
    "AgentRoute",
    "AgentRouter",
    "HttpAgentRouter",
    "InboundContext",
    "ReplyPayload",
    "RoutePeer",
]
