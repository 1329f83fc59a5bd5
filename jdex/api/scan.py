"""
@description 目录扫描接口
@responsibility 启动、取消扫描并查询进度和扫描结果
"""

from fastapi import APIRouter, Depends

from jdex.core.context import AppContext, get_context
from jdex.schemas.api import ApiResponse, ScanRequest, success_response
from jdex.schemas.files import FileRecord, ScanProgress, ScanResult

router = APIRouter()


@router.post("/scan", response_model=ApiResponse[ScanResult])
async def start_scan(request: ScanRequest, ctx: AppContext = Depends(get_context)):
    max_depth = request.max_depth
    if max_depth is None:
        max_depth = ctx.config.scanner.max_depth

    result = await ctx.scanner.scan(
        request.root_path, max_depth=max_depth, persist=request.persist
    )
    if not result.success:
        raise result.error

    message = "扫描已取消" if result.data.cancelled else "扫描完成"
    return success_response(data=result.data, message=message)


@router.post("/scan/cancel")
async def cancel_scan(ctx: AppContext = Depends(get_context)):
    running = ctx.scanner.is_running
    ctx.scanner.cancel()
    return success_response(
        data={"cancelled": running, "session_id": ctx.scanner.session_id},
        message="已请求取消扫描" if running else "当前没有正在进行的扫描",
    )


@router.get("/scan/progress", response_model=ApiResponse[ScanProgress])
async def get_scan_progress(ctx: AppContext = Depends(get_context)):
    return success_response(data=ctx.scanner.get_progress(), message="获取扫描进度成功")


@router.get("/scan/{session_id}/files", response_model=ApiResponse[list[FileRecord]])
async def get_scan_files(session_id: str, ctx: AppContext = Depends(get_context)):
    files = await ctx.store.get_scanned_files(session_id)
    return success_response(data=files, message=f"共 {len(files)} 个文件")
