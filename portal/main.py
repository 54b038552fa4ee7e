"""
Agent Portal - FastAPI 入口
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from .config import settings
from .database import init_database
from .errors import AuthorizationError, ConfigurationError, NotFoundError, UpstreamError
from .api import agents, chat, conversations, memories

# 配置日志
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("🚀 Agent Portal 启动中...")

    await init_database()
    logger.info(f"✅ 数据库初始化完成: {settings.database_path}")

    if not settings.openrouter_api_key:
        logger.warning("⚠️ 未配置 OPENROUTER_API_KEY，对话与提取将不可用")

    logger.info(f"🤖 Agent Portal 已就绪，监听 {settings.host}:{settings.port}")

    yield

    logger.info("👋 Agent Portal 关闭中...")


app = FastAPI(
    title="Agent Portal",
    description="带长期记忆的 Agent 对话门户",
    version=VERSION,
    lifespan=lifespan
)


# ==================== 错误映射 ====================

def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(AuthorizationError)
async def authorization_error(request: Request, exc: AuthorizationError):
    return _error(403, exc)


@app.exception_handler(NotFoundError)
async def not_found_error(request: Request, exc: NotFoundError):
    return _error(404, exc)


@app.exception_handler(ConfigurationError)
async def configuration_error(request: Request, exc: ConfigurationError):
    return _error(503, exc)


@app.exception_handler(UpstreamError)
async def upstream_error(request: Request, exc: UpstreamError):
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "upstream_status": exc.status_code},
    )


@app.exception_handler(ValueError)
async def value_error(request: Request, exc: ValueError):
    return _error(422, exc)


# 注册路由
app.include_router(memories.router, prefix="/memories", tags=["Memories"])
app.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
app.include_router(agents.router, tags=["Agents"])
app.include_router(chat.router, prefix="/chat", tags=["Chat"])


@app.get("/health")
async def health_check():
    """健康检查"""
    return {"status": "healthy", "service": f"Agent Portal v{VERSION}"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "portal.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
