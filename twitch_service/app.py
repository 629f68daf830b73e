"""
Twitch Dispatch 主应用

连接 Twitch 聊天，把通过访问控制的消息转发到 Agent，并把回复发回频道。

运行方式:
    python -m twitch_service.app
    # 或
    uvicorn twitch_service.app:app --host 0.0.0.0 --port 8084

配置:
    - JSON 配置文件 (TWITCH_CONFIG_FILE，默认 data/twitch_config.json)
    - 环境变量覆盖服务级参数（见 config.py）
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import config, list_account_ids
from .gateway import TwitchGateway
from .routes import actions_router, status_router

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# ============== FastAPI 应用 ==============

@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    config.initialize()

    errors = config.validate()
    for error in errors:
        logger.warning(f"配置警告: {error}")

    gateway = TwitchGateway(config)
    app.state.gateway = gateway

    logger.info(f"Twitch Dispatch 启动 v{__version__}")
    logger.info(f"  端口: {config.port}")
    logger.info(f"  Agent URL: {config.agent_url or '未配置'}")
    logger.info(f"  账号: {', '.join(list_account_ids(config.get_cfg())) or '无'}")

    started = await gateway.start_all()
    logger.info(f"  已启动 {len(started)} 个账号")

    yield

    await gateway.shutdown()
    logger.info("Twitch Dispatch 关闭")


# 创建 FastAPI 应用
app = FastAPI(
    title="Twitch Dispatch",
    description="Twitch 聊天频道适配 - 接收频道消息，转发到 Agent",
    version=__version__,
    lifespan=lifespan
)

# CORS 中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(status_router)
app.include_router(actions_router)


@app.get("/")
async def root() -> dict:
    return {"service": "twitch-dispatch", "version": __version__}


@app.get("/health")
async def health() -> dict:
    """健康检查"""
    errors = config.validate()
    return {
        "status": "healthy" if not errors else "unhealthy",
        "config_errors": errors,
        "accounts_count": len(list_account_ids(config.get_cfg())),
        "version": __version__
    }


def main():
    """主函数"""
    import uvicorn
    uvicorn.run(
        "twitch_service.app:app",
        host="0.0.0.0",
        port=config.port,
        reload=False
    )


if __name__ == "__main__":
    main()
