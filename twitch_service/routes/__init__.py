"""
路由模块
"""
from .actions import router as actions_router
from .status import router as status_router

__all__ = ["actions_router", "status_router"]
