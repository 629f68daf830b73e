"""
Twitch 状态 API 路由

/twitch/status、/twitch/accounts/*、/twitch/probe/* 相关接口
"""
import logging

from fastapi import APIRouter, Request

from ..gateway import AccountNotFoundError, TwitchGateway
from ..probe import DEFAULT_PROBE_TIMEOUT_MS
from ..status import build_channel_summary
from ..utils.twitch import format_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/twitch", tags=["twitch"])


def _gateway(request: Request) -> TwitchGateway:
    return request.app.state.gateway


@router.get("/status")
async def get_status(request: Request) -> dict:
    """所有账号的快照、摘要与诊断问题"""
    gateway = _gateway(request)
    snapshots = gateway.build_snapshots()
    issues = gateway.collect_issues()
    return {
        "success": True,
        "accounts": [snapshot.to_dict() for snapshot in snapshots],
        "summaries": {s.account_id: build_channel_summary(s) for s in snapshots},
        "issues": [issue.to_dict() for issue in issues],
        "connections": gateway.client_manager.connection_count,
    }


@router.get("/accounts/{account_id}")
async def describe_account(account_id: str, request: Request) -> dict:
    try:
        return {"success": True, "account": _gateway(request).describe_account(account_id)}
    except AccountNotFoundError as e:
        return {"success": False, "error": e.args[0]}


@router.post("/accounts/{account_id}/start")
async def start_account(account_id: str, request: Request) -> dict:
    try:
        await _gateway(request).start_account(account_id)
        return {"success": True}
    except AccountNotFoundError as e:
        return {"success": False, "error": e.args[0]}
    except Exception as e:
        logger.error(f"启动账号失败: {account_id}, {e}")
        return {"success": False, "error": format_error(e)}


@router.post("/accounts/{account_id}/stop")
async def stop_account(account_id: str, request: Request) -> dict:
    await _gateway(request).stop_account(account_id)
    return {"success": True}


@router.post("/probe/{account_id}")
async def probe_account(account_id: str, request: Request, timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS) -> dict:
    """
    探测账号连接

    Query:
        timeout_ms: 超时时间（毫秒）
    """
    try:
        result = await _gateway(request).probe_account(account_id, timeout_ms)
    except AccountNotFoundError as e:
        return {"success": False, "error": e.args[0]}
    return {"success": result.ok, "probe": result.to_dict()}
