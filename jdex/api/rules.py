"""
@description 整理规则接口
@responsibility 规则的增删改查以及对文件的批量匹配
"""

from fastapi import APIRouter, Depends

from jdex.core.context import AppContext, get_context
from jdex.core.errors import NotFoundError
from jdex.models.organization_rule import OrganizationRule
from jdex.schemas.api import ApiResponse, MatchRequest, RuleItem, success_response
from jdex.schemas.matching import BatchMatchResult, RuleCreate, RuleUpdate

router = APIRouter()


def _to_rule_item(rule: OrganizationRule) -> RuleItem:
    return RuleItem(
        id=rule.id,
        name=rule.name,
        rule_type=rule.rule_type,
        pattern=rule.pattern,
        target_type=rule.target_type,
        target_id=rule.target_id,
        priority=rule.priority,
        exclude_pattern=rule.exclude_pattern,
        is_active=bool(rule.is_active),
        match_count=rule.match_count or 0,
        notes=rule.notes,
        created_at=rule.created_at,
    )


@router.get("/rules", response_model=ApiResponse[list[RuleItem]])
async def list_rules(ctx: AppContext = Depends(get_context)):
    rules = await ctx.store.get_rules()
    return success_response(data=[_to_rule_item(rule) for rule in rules], message="获取规则成功")


@router.post("/rules", response_model=ApiResponse[RuleItem])
async def create_rule(request: RuleCreate, ctx: AppContext = Depends(get_context)):
    rule_id = await ctx.engine.create_rule(request)
    rule = await ctx.store.get_rule(rule_id)
    return success_response(data=_to_rule_item(rule), message="规则已创建")


@router.put("/rules/{rule_id}", response_model=ApiResponse[RuleItem])
async def update_rule(rule_id: int, request: RuleUpdate, ctx: AppContext = Depends(get_context)):
    rule = await ctx.engine.update_rule(rule_id, request)
    return success_response(data=_to_rule_item(rule), message="规则已更新")


@router.delete("/rules/{rule_id}")
async def delete_rule(rule_id: int, ctx: AppContext = Depends(get_context)):
    if not await ctx.engine.delete_rule(rule_id):
        raise NotFoundError(f"规则不存在: {rule_id}", "rule")
    return success_response(data={"id": rule_id}, message="规则已删除")


@router.post("/match", response_model=ApiResponse[list[BatchMatchResult]])
async def match_files(request: MatchRequest, ctx: AppContext = Depends(get_context)):
    results = await ctx.engine.batch_match(request.files)

    # 来自扫描会话的文件，保存最佳建议以便下次直接展示
    for result in results:
        if result.file.scan_session_id and result.suggestions:
            best = result.suggestions[0]
            await ctx.store.update_scanned_file_suggestion(
                result.file.scan_session_id,
                result.file.path,
                best.target_folder.folder_number,
                best.confidence,
            )
    return success_response(data=results, message=f"已匹配 {len(results)} 个文件")
