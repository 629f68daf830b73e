"""
Twitch 工具动作 API 路由

/twitch/actions/*、/twitch/resolve 相关接口
"""
import logging

from fastapi import APIRouter, Request

from ..actions import list_actions
from ..config import DEFAULT_ACCOUNT_ID
from ..gateway import AccountNotFoundError, TwitchGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/twitch", tags=["twitch-actions"])


def _gateway(request: Request) -> TwitchGateway:
    return request.app.state.gateway


@router.get("/actions")
async def get_actions() -> dict:
    return {"success": True, "actions": list_actions()}


@router.post("/actions/{action}")
async def run_action(action: str, request: Request) -> dict:
    """
    执行工具动作

    Body:
        to: str - 目标频道（可带 #，不填时使用账号默认频道）
        message: str (必填)
        accountId: str - 账号 ID（默认 default）
    """
    params = await request.json()
    account_id = params.get("accountId") or DEFAULT_ACCOUNT_ID
    result = await _gateway(request).handle_action(action, params, account_id)
    if result is None:
        return {"success": False, "error": f"不支持的动作: {action}"}
    return {"success": True, "result": result}


@router.post("/resolve")
async def resolve_targets(request: Request) -> dict:
    """
    解析用户名 / 用户 ID

    Body:
        inputs: list[str] (必填)
        kind: "user" | "group"
        accountId: str
    """
    data = await request.json()
    inputs = data.get("inputs") or []
    if isinstance(inputs, str):
        inputs = [inputs]
    account_id = data.get("accountId") or DEFAULT_ACCOUNT_ID
    kind = data.get("kind") or "user"

    try:
        results = await _gateway(request).resolve_targets(inputs, account_id, kind)
    except AccountNotFoundError as e:
        return {"success": False, "error": e.args[0]}

    return {"success": True, "results": [r.to_dict() for r in results]}
