"""FastAPI 应用主模块"""

import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, Request, Response

from . import __version__
from .actions import ActionDispatcher
from .config import GatewayConfig
from .panel_client import PanelClient
from .responses import error_response, preflight_response, success_response

logger = logging.getLogger(__name__)

PROXY_PATHS = (
    "/api/pterodactyl-proxy",
    "/functions/v1/pterodactyl-proxy",
)
SERVER_UUID_HEADER = "x-server-uuid"


# ==================== 生命周期 ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    dispatcher: ActionDispatcher = app.state.dispatcher

    logger.info("Bedrock Panel Gateway 启动中...")
    logger.info("配置: %s", dispatcher.config.summary())
    if not dispatcher.config.is_configured:
        logger.warning("面板地址或 API 密钥未配置，所有 action 都会返回配置错误")

    yield

    logger.info("Bedrock Panel Gateway 关闭中...")
    await dispatcher.close()
    logger.info("Bedrock Panel Gateway 已关闭")


# ==================== 创建应用 ====================

def create_app(
    config: GatewayConfig | None = None,
    client_factory: Callable[[GatewayConfig], PanelClient] | None = None,
) -> FastAPI:
    """创建 FastAPI 应用

    Args:
        config: 网关配置，默认从环境变量加载
        client_factory: 面板客户端工厂（测试时注入）
    """
    app = FastAPI(
        title="Bedrock Panel Gateway",
        description="Minecraft Bedrock 服务器管理面板的 Pterodactyl 代理网关",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.dispatcher = ActionDispatcher(
        config or GatewayConfig.from_env(),
        client_factory=client_factory,
    )

    # 注册路由
    _register_routes(app)

    return app


def _register_routes(app: FastAPI) -> None:
    """注册路由"""

    @app.get("/api/health")
    async def health_check():
        """健康检查端点"""
        return {"status": "ok", "service": "bedrock-panel-gateway"}

    async def pterodactyl_proxy(request: Request) -> Response:
        """代理 action 请求到 Pterodactyl 面板"""
        if request.method == "OPTIONS":
            return preflight_response()

        dispatcher: ActionDispatcher = request.app.state.dispatcher
        query = dict(request.query_params)
        action = query.pop("action", None)

        try:
            body = await request.body()
            result = await dispatcher.dispatch(
                request.headers.get(SERVER_UUID_HEADER),
                action,
                query=query,
                body=body,
            )
            return success_response(result)
        except Exception as e:
            return error_response(e)

    for path in PROXY_PATHS:
        app.add_api_route(
            path,
            pterodactyl_proxy,
            methods=["POST", "OPTIONS"],
            include_in_schema=path == PROXY_PATHS[0],
        )


# 创建应用实例
app = create_app()
