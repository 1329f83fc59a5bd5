"""
@description FastAPI 应用入口
@responsibility 加载配置、初始化数据库与服务、集成路由、启动监控流水线
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from jdex.api import organize, rename, rules, scan, system
from jdex.core.config import load_config
from jdex.core.context import build_context
from jdex.core.database import init_db
from jdex.core.errors import (
    AppError,
    NotFoundError,
    PathSecurityError,
    ValidationError,
    sanitize_error_for_user,
)
from jdex.core.logging import setup_logging
from jdex.schemas.api import error_response, success_response

APP_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()
    setup_logging(config.logging)
    logger.info("应用启动中...")

    context = build_context(config)
    await init_db(context.db_engine)
    logger.info("数据库初始化完成")

    app.state.context = context

    await context.watcher.start()
    logger.info("监控流水线已启动")

    yield

    context.scanner.cancel()
    await context.watcher.stop()
    await context.db_engine.dispose()
    logger.info("应用已关闭")


app = FastAPI(
    title="Johnny Decimal 文件整理器",
    description="按 Johnny Decimal 体系扫描、匹配并整理本地文件",
    version=APP_VERSION,
    lifespan=lifespan,
)


def _status_for(exc: AppError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, PathSecurityError):
        return 403
    if isinstance(exc, ValidationError):
        return 400
    return 500


# 全局异常处理器
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """处理业务异常，返回脱敏后的错误信息"""
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    else:
        logger.info(f"{exc.code}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=error_response(
            status_code, sanitize_error_for_user(exc), data={"error": exc.code}
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """处理 HTTP 异常"""
    logger.info(f"HTTP 异常处理器被调用: {exc.status_code} - {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.status_code, exc.detail).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """处理请求参数验证错误"""
    logger.info(f"验证错误处理器被调用: {len(exc.errors())} 个错误")
    errors = [
        {"loc": list(error["loc"]), "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=error_response(422, "请求参数验证失败", data={"errors": errors}).model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """处理通用异常"""
    logger.exception(f"服务器内部错误: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=500,
        content=error_response(500, "服务器内部错误").model_dump(),
    )


app.include_router(scan.router, prefix="/api", tags=["scan"])
app.include_router(rules.router, prefix="/api", tags=["rules"])
app.include_router(organize.router, prefix="/api", tags=["organize"])
app.include_router(rename.router, prefix="/api", tags=["rename"])
app.include_router(system.router, prefix="/api", tags=["system"])


@app.get("/")
async def root():
    return success_response(
        data={"message": "Johnny Decimal 文件整理器 API", "version": APP_VERSION},
        message="服务运行中",
    )


@app.get("/health")
async def health_check():
    return success_response(data={"status": "healthy"}, message="健康检查通过")
