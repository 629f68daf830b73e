"""
Agent 转发服务

把通过访问控制的入站消息转发到 Agent，并把回复交给投递函数发回 Twitch。

AgentRouter 是宿主平台的路由接口：
- resolve_agent_route: 根据账号和对端（频道）确定会话
- dispatch_reply: 把入站上下文交给 Agent，回复通过 deliver 回调投递

默认实现 HttpAgentRouter 直接 HTTP POST 到配置的 Agent URL。
"""
import json as json_module
import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass
class RoutePeer:
    """对端（Twitch 聊天都按群聊处理）"""
    kind: str
    id: str


@dataclass
class AgentRoute:
    """路由结果"""
    agent_id: str
    account_id: str
    session_key: str


@dataclass
class InboundContext:
    """交给 Agent 的入站上下文"""
    body: str
    raw_body: str
    from_: str
    to: str
    session_key: str
    account_id: str
    sender_name: str
    sender_id: Optional[str]
    sender_username: str
    conversation_label: str
    message_sid: Optional[str] = None
    chat_type: str = "group"
    provider: str = "twitch"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["from"] = data.pop("from_")
        return data


@dataclass
class ReplyPayload:
    """Agent 回复"""
    text: str
    session_id: Optional[str] = None


DeliverFunc = Callable[[ReplyPayload], Awaitable[None]]


class AgentRouter(Protocol):
    def resolve_agent_route(self, account_id: str, peer: RoutePeer) -> AgentRoute: ...

    async def dispatch_reply(self, ctx: InboundContext, deliver: DeliverFunc) -> None: ...


class HttpAgentRouter:
    """
    HTTP 直连的 Agent 路由

    请求体: {"message": <envelope>, "sessionId": <可选>, "context": {...}}
    响应兼容 {"response": "..."} 与 {"reply": "..."} 两种格式。
    """

    def __init__(self, agent_url: str, api_key: str | None = None, timeout: int = 300):
        self.agent_url = agent_url
        self.api_key = api_key
        self.timeout = timeout
        # session_key -> Agent 返回的 session_id
        self._sessions: dict[str, str] = {}

    def resolve_agent_route(self, account_id: str, peer: RoutePeer) -> AgentRoute:
        return AgentRoute(
            agent_id="main",
            account_id=account_id,
            session_key=f"twitch:{account_id}:{peer.kind}:{peer.id}",
        )

    def get_session_id(self, session_key: str) -> str | None:
        return self._sessions.get(session_key)

    async def dispatch_reply(self, ctx: InboundContext, deliver: DeliverFunc) -> None:
        reply = await self.forward(ctx)
        if reply is None or not reply.text:
            return
        await deliver(reply)

    async def forward(self, ctx: InboundContext) -> ReplyPayload | None:
        """
        转发入站上下文到 Agent

        Returns:
            ReplyPayload；未配置 URL、请求失败或没有回复时返回 None
        """
        if not self.agent_url:
            logger.warning("未配置 Agent URL，消息不转发")
            return None

        session_id = self._sessions.get(ctx.session_key)
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        request_body = {"message": ctx.body, "context": ctx.to_dict()}
        if session_id:
            request_body["sessionId"] = session_id

        request_id = str(uuid.uuid4())[:8]
        start_time = datetime.now()
        logger.info(
            f"[{request_id}] 转发消息到 Agent: url={self.agent_url}, "
            f"session_id={session_id[:8] if session_id else 'None'}, timeout={self.timeout}s"
        )

        try:
            timeout_config = httpx.Timeout(
                connect=30.0,
                read=float(self.timeout),
                write=30.0,
                pool=30.0
            )
            async with httpx.AsyncClient(timeout=timeout_config) as client:
                response = await client.post(self.agent_url, json=request_body, headers=headers)

            duration_ms = int((datetime.now() - start_time).total_seconds() * 1000)

            if response.status_code != 200:
                logger.error(
                    f"[{request_id}] Agent 返回错误: status={response.status_code}, "
                    f"body={response.text[:200]}, 耗时: {duration_ms}ms"
                )
                return None

            try:
                result = response.json()
            except ValueError as e:
                logger.warning(f"[{request_id}] 解析 JSON 响应失败: {e}，使用原始文本")
                return ReplyPayload(text=response.text[:1000], session_id=session_id)

        except httpx.TimeoutException as e:
            duration_ms = int((datetime.now() - start_time).total_seconds() * 1000)
            logger.error(f"[{request_id}] 转发请求超时: {self.agent_url}, 耗时: {duration_ms}ms, 错误类型: {type(e).__name__}")
            return None
        except Exception as e:
            duration_ms = int((datetime.now() - start_time).total_seconds() * 1000)
            logger.error(f"[{request_id}] 转发请求失败: {e}, 耗时: {duration_ms}ms", exc_info=True)
            return None

        logger.debug(f"[{request_id}] 响应 JSON: {str(result)[:200]}")
        if not isinstance(result, dict):
            return ReplyPayload(text=json_module.dumps(result, ensure_ascii=False)[:500], session_id=session_id)

        response_session_id = result.get("sessionId") or result.get("session_id") or session_id
        if response_session_id:
            self._sessions[ctx.session_key] = response_session_id

        # AgentStudio 格式: {"response": "..."}；标准格式: {"reply": "..."}
        reply = result.get("response") or result.get("reply") or ""
        if not reply:
            logger.info(f"[{request_id}] Agent 没有返回回复内容")
            return None

        return ReplyPayload(text=str(reply), session_id=response_session_id)
