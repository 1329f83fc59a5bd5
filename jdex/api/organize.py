"""
@description 文件整理接口
@responsibility 预览、移动、批量移动、撤销整理操作并查询整理记录
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from jdex.core.context import AppContext, get_context
from jdex.schemas.api import (
    ApiResponse,
    BatchMoveRequest,
    BatchRollbackRequest,
    MoveRequest,
    OrganizedRecordsResponse,
    PreviewRequest,
    success_response,
)
from jdex.schemas.operations import (
    BatchMoveResults,
    BatchRollbackResults,
    ConflictStrategy,
    MoveResult,
    OperationStatus,
    PreviewResult,
    RecordStatus,
    RollbackResult,
)

router = APIRouter()


def _default_strategy(ctx: AppContext, strategy: Optional[ConflictStrategy]) -> ConflictStrategy:
    return strategy or ConflictStrategy(ctx.config.operations.default_conflict_strategy)


@router.post("/organize/preview", response_model=ApiResponse[list[PreviewResult]])
async def preview_organize(request: PreviewRequest, ctx: AppContext = Depends(get_context)):
    previews = await ctx.organizer.preview_operations(request.operations)
    return success_response(data=previews, message="预览生成成功")


@router.post("/organize/move", response_model=ApiResponse[MoveResult])
async def move_file(request: MoveRequest, ctx: AppContext = Depends(get_context)):
    result = await ctx.organizer.move_file(
        request.source_path,
        request.folder_number,
        conflict_strategy=_default_strategy(ctx, request.conflict_strategy),
        drive_id=request.drive_id,
        matched_rule_id=request.matched_rule_id,
    )
    if not result.success:
        raise result.error

    if result.data.status == OperationStatus.SKIPPED:
        return success_response(data=result.data, message="目标已存在，已跳过")

    if request.matched_rule_id is not None:
        await ctx.engine.record_match(request.matched_rule_id)
    return success_response(data=result.data, message="文件已移动")


@router.post("/organize/batch", response_model=ApiResponse[BatchMoveResults])
async def batch_move(request: BatchMoveRequest, ctx: AppContext = Depends(get_context)):
    results = await ctx.organizer.batch_move(
        request.operations,
        conflict_strategy=_default_strategy(ctx, request.conflict_strategy),
        stop_on_error=request.stop_on_error,
    )
    for operation, item in zip(request.operations, results.operations):
        if item.status == OperationStatus.SUCCESS and operation.matched_rule_id is not None:
            await ctx.engine.record_match(operation.matched_rule_id)

    return success_response(
        data=results,
        message=f"成功 {results.success}，失败 {results.failed}，跳过 {results.skipped}",
    )


@router.post("/organize/rollback/{record_id}", response_model=ApiResponse[RollbackResult])
async def rollback_move(record_id: int, ctx: AppContext = Depends(get_context)):
    result = await ctx.organizer.rollback_move(record_id)
    if not result.success:
        raise result.error
    return success_response(data=result.data, message="已撤销")


@router.post("/organize/rollback", response_model=ApiResponse[BatchRollbackResults])
async def batch_rollback(request: BatchRollbackRequest, ctx: AppContext = Depends(get_context)):
    results = await ctx.organizer.batch_rollback(request.record_ids)
    return success_response(
        data=results, message=f"成功 {results.success}，失败 {results.failed}"
    )


@router.get("/organize/records", response_model=ApiResponse[OrganizedRecordsResponse])
async def get_organize_records(
    page: int = Query(1, ge=1, description="页码"),
    page_size: int = Query(20, ge=1, le=100, description="每页数量"),
    status: Optional[RecordStatus] = Query(None, description="筛选状态"),
    ctx: AppContext = Depends(get_context),
):
    total, records = await ctx.store.get_organized_files(
        status=status.value if status else None,
        offset=(page - 1) * page_size,
        limit=page_size,
    )
    return success_response(
        data=OrganizedRecordsResponse(total=total, records=records),
        message="获取整理记录成功",
    )
