"""
@description 批量重命名接口
@responsibility 生成重命名预览、执行重命名和撤销
"""

from fastapi import APIRouter, Depends

from jdex.core.context import AppContext, get_context
from jdex.schemas.api import (
    ApiResponse,
    RenameExecuteRequest,
    RenamePreviewRequest,
    success_response,
)
from jdex.schemas.rename import BatchRenameResult, RenamePreviewItem, UndoRenameResult
from jdex.utils.validation import validate_file_path

router = APIRouter()


@router.post("/rename/preview", response_model=ApiResponse[list[RenamePreviewItem]])
async def preview_rename(request: RenamePreviewRequest, ctx: AppContext = Depends(get_context)):
    allowed_roots = ctx.config.storage.allowed_roots
    paths = [validate_file_path(path, allowed_roots, "file_paths") for path in request.file_paths]
    previews = await ctx.renamer.generate_preview(paths, request.options)
    conflicts = sum(1 for item in previews if item.conflict)
    return success_response(data=previews, message=f"预览生成成功，{conflicts} 个冲突")


@router.post("/rename/execute", response_model=ApiResponse[BatchRenameResult])
async def execute_rename(request: RenameExecuteRequest, ctx: AppContext = Depends(get_context)):
    allowed_roots = ctx.config.storage.allowed_roots
    for item in request.previews:
        validate_file_path(item.original_path, allowed_roots, "original_path")
        validate_file_path(item.new_path, allowed_roots, "new_path")

    result = await ctx.renamer.execute_batch_rename(request.previews)
    return success_response(
        data=result,
        message=f"成功 {result.success}，失败 {result.failed}，跳过 {result.skipped}",
    )


@router.post("/rename/undo/{undo_id}", response_model=ApiResponse[UndoRenameResult])
async def undo_rename(undo_id: str, ctx: AppContext = Depends(get_context)):
    result = await ctx.renamer.undo_batch_rename(undo_id)
    return success_response(data=result, message=f"已恢复 {result.restored} 个文件")
