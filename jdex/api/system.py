"""
@description 系统状态接口
@responsibility 查询监控流水线、扫描器和规则缓存的运行状态
"""

from fastapi import APIRouter, Depends

from jdex.core.context import AppContext, get_context
from jdex.schemas.api import ApiResponse, StatusResponse, success_response

router = APIRouter()


@router.get("/status", response_model=ApiResponse[StatusResponse])
async def get_status(ctx: AppContext = Depends(get_context)):
    return success_response(
        data=StatusResponse(
            watcher_running=ctx.watcher.is_running,
            pending_events=ctx.watcher.pending_count,
            scan_running=ctx.scanner.is_running,
            filesystem_available=ctx.fs is not None,
            cache_age_seconds=ctx.engine.cache_age,
        ),
        message="获取系统状态成功",
    )
