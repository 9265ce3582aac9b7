"""
FastAPI应用主入口 - 组合根（composition root）
"""
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import payments as payments_routes
from api.routes import proxy as proxy_routes
from api.routes import ws as ws_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from application.ports.terminal_config import TerminalConfigSource
from application.services.flow_registry import FlowRegistry
from application.services.intent_submitter import PaymentIntentSubmitter
from application.services.outcome_poller import OutcomePoller
from application.services.payment_flow import PaymentFlowController
from application.services.terminal_directory import TerminalDirectory
from core.config import settings
from core.exceptions import register_exception_handlers
from core.response import success_response
from core.logging_config import get_logger, configure_logging
from core.settings import PaymentSettings, payment_settings
from infrastructure.adapters.terminal_config import StaticTerminalConfig
from infrastructure.external.payments import build_credentialed_gateway, get_terminal_gateway


# 初始化日志：在入口处显式配置
configure_logging()
logger = get_logger(__name__)


def create_app(
    cfg: Optional[PaymentSettings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    terminal_config: Optional[TerminalConfigSource] = None,
) -> FastAPI:
    """
    创建应用

    Args:
        cfg: 支付配置（默认读取环境变量）
        transport: 可选的 httpx transport（测试中注入 MockTransport）
        terminal_config: 终端配置来源（默认使用配置文件中的静态映射）
    """
    cfg = cfg or payment_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理：装配网关、客户端与流程注册表"""
        gateway = build_credentialed_gateway(cfg, transport=transport)
        client = get_terminal_gateway(gateway=gateway, settings=cfg)
        directory = TerminalDirectory(
            client,
            terminal_config or StaticTerminalConfig.from_settings(cfg.terminals),
            enabled_by_default=cfg.terminals.enabled_by_default,
        )
        submitter = PaymentIntentSubmitter(client, min_amount=cfg.flow.min_amount)
        poller = OutcomePoller(
            client,
            interval=cfg.polling.interval_seconds,
            timeout=cfg.polling.timeout_seconds,
            unknown_status_policy=cfg.polling.unknown_status_policy,
        )
        registry = FlowRegistry(partial(
            PaymentFlowController,
            directory=directory,
            submitter=submitter,
            poller=poller,
            gateway=client,
            cancel_intent_on_close=cfg.flow.cancel_intent_on_close,
            display_reference_length=cfg.flow.display_reference_length,
        ))

        app.state.credentialed_gateway = gateway
        app.state.terminal_gateway = client
        app.state.terminal_directory = directory
        app.state.flow_registry = registry
        logger.info(
            "payments_initialized",
            provider=client.provider,
            base_url=cfg.provider.base_url,
            has_credential=gateway.has_credential,
            proxy_prefix=cfg.proxy.prefix,
        )

        yield

        # 关闭时的清理工作
        await registry.aclose()
        await gateway.aclose()
        logger.info("application_shutdown", message="Application shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        description="POS 终端收款服务：终端选择、支付意图推送、结果轮询",
    )

    # 添加中间件（注意顺序：从下往上执行）
    # 1. 日志中间件（依赖request_id）
    app.add_middleware(LoggingMiddleware)
    # 2. Request ID中间件（最外层，为后续中间件提供request_id）
    app.add_middleware(RequestIDMiddleware)
    # 3. CORS中间件
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册全局异常处理器
    register_exception_handlers(app)

    # 注册路由
    app.include_router(payments_routes.router, prefix="/api/v1")
    app.include_router(ws_routes.router, prefix="/api/v1")
    app.include_router(proxy_routes.router, prefix=cfg.proxy.prefix)

    @app.get("/", tags=["Root"])
    async def root():
        """API根路径"""
        return success_response(
            data={
                "name": settings.PROJECT_NAME,
                "version": settings.VERSION,
                "docs": "/docs",
                "redoc": "/redoc"
            },
            message="Welcome"
        )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """健康检查端点"""
        return success_response(data={"status": "healthy", "environment": settings.ENVIRONMENT}, message="OK")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
