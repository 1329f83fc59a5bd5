"""
@description 持久化服务
@responsibility 封装规则、层级结构、扫描结果、整理记录、存储盘、监控目录和撤销日志的数据库读写
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from jdex.core.database import get_session
from jdex.core.errors import DatabaseError, NotFoundError, ValidationError
from jdex.models.hierarchy import Area, Category, Folder
from jdex.models.organization_rule import OrganizationRule
from jdex.models.organized_file import OrganizedFile
from jdex.models.rename_undo_log import RenameUndoLog
from jdex.models.scanned_file import ScannedFile
from jdex.models.storage_drive import StorageDrive
from jdex.models.watched_folder import WatchActivity, WatchedFolder
from jdex.schemas.files import FileRecord, FileType
from jdex.schemas.matching import (
    Confidence,
    FolderContext,
    RuleCreate,
    RuleType,
    RuleUpdate,
    TargetType,
)
from jdex.schemas.operations import OrganizedFileInfo, RecordStatus
from jdex.schemas.rename import UndoLogEntry
from jdex.services.rule_parser import PatternError, parse_pattern
from jdex.utils.validation import validate_folder_number

MIN_PRIORITY = 0
MAX_PRIORITY = 100


def clamp_priority(priority: Optional[int]) -> int:
    if priority is None:
        return 50
    return max(MIN_PRIORITY, min(MAX_PRIORITY, int(priority)))


def _validate_rule(rule_type: str, pattern: str, target_type: str, target_id: str) -> None:
    if target_type not in {t.value for t in TargetType}:
        raise ValidationError(f"未知的目标类型: {target_type}", "target_type")
    if not target_id or not str(target_id).strip():
        raise ValidationError("目标标识不能为空", "target_id")
    try:
        parse_pattern(rule_type, pattern)
    except PatternError as e:
        raise ValidationError(str(e), "pattern") from e


def _to_organized_info(record: OrganizedFile) -> OrganizedFileInfo:
    return OrganizedFileInfo(
        id=record.id,
        filename=record.filename,
        original_path=record.original_path,
        current_path=record.current_path,
        jd_folder_number=record.jd_folder_number,
        file_extension=record.file_extension,
        file_type=record.file_type,
        file_size=record.file_size or 0,
        matched_rule_id=record.matched_rule_id,
        storage_drive_id=record.storage_drive_id,
        status=RecordStatus(record.status),
        organized_at=record.organized_at,
    )


class Store:
    """数据库访问入口，所有 SQLAlchemy 异常都会被包装为 DatabaseError"""

    def __init__(self, session_factory: sessionmaker, max_undo_logs: int = 10):
        self._session_factory = session_factory
        self._max_undo_logs = max_undo_logs

    @asynccontextmanager
    async def _session(self, operation: str):
        try:
            async with get_session(self._session_factory) as session:
                yield session
        except IntegrityError as e:
            logger.error(f"数据库约束冲突 ({operation}): {e}")
            raise DatabaseError(f"数据库约束冲突: {e.orig}", "constraint") from e
        except SQLAlchemyError as e:
            logger.error(f"数据库操作失败 ({operation}): {e}")
            raise DatabaseError(f"数据库操作失败: {e}", operation) from e

    # ------------------------------------------------------------------
    # 规则
    # ------------------------------------------------------------------

    async def get_active_rules(self) -> list[OrganizationRule]:
        """启用的规则，按优先级降序，同优先级按创建顺序"""
        async with self._session("query") as session:
            result = await session.execute(
                select(OrganizationRule)
                .where(OrganizationRule.is_active.is_(True))
                .order_by(OrganizationRule.priority.desc(), OrganizationRule.id.asc())
            )
            return list(result.scalars().all())

    async def get_rules(self) -> list[OrganizationRule]:
        async with self._session("query") as session:
            result = await session.execute(
                select(OrganizationRule).order_by(
                    OrganizationRule.priority.desc(), OrganizationRule.id.asc()
                )
            )
            return list(result.scalars().all())

    async def get_rule(self, rule_id: int) -> Optional[OrganizationRule]:
        async with self._session("query") as session:
            return await session.get(OrganizationRule, rule_id)

    async def create_rule(self, data: RuleCreate) -> int:
        """
        创建规则

        Returns:
            新规则 ID

        Raises:
            ValidationError: 模式与规则类型不匹配或目标为空
        """
        _validate_rule(data.rule_type.value, data.pattern, data.target_type.value, data.target_id)

        async with self._session("insert") as session:
            rule = OrganizationRule(
                name=data.name.strip(),
                rule_type=data.rule_type.value,
                pattern=data.pattern.strip(),
                target_type=data.target_type.value,
                target_id=data.target_id.strip(),
                priority=clamp_priority(data.priority),
                exclude_pattern=(data.exclude_pattern or "").strip() or None,
                is_active=data.is_active,
                notes=data.notes,
            )
            session.add(rule)
            await session.commit()
            logger.info(f"规则已创建: [{rule.name}] id={rule.id}")
            return rule.id

    async def update_rule(self, rule_id: int, updates: RuleUpdate) -> OrganizationRule:
        async with self._session("update") as session:
            rule = await session.get(OrganizationRule, rule_id)
            if rule is None:
                raise NotFoundError(f"规则不存在: {rule_id}", "rule")

            patch = updates.model_dump(exclude_unset=True)
            rule_type = patch.get("rule_type") or rule.rule_type
            target_type = patch.get("target_type") or rule.target_type
            _validate_rule(
                RuleType(rule_type).value,
                patch.get("pattern") or rule.pattern,
                TargetType(target_type).value,
                patch.get("target_id") or rule.target_id,
            )

            for key, value in patch.items():
                if value is None and key not in {"exclude_pattern", "notes"}:
                    continue
                if key in {"rule_type", "target_type"}:
                    value = value.value if hasattr(value, "value") else value
                elif key == "priority":
                    value = clamp_priority(value)
                elif key in {"pattern", "name", "target_id"} and value is not None:
                    value = value.strip()
                elif key == "exclude_pattern":
                    value = (value or "").strip() or None
                setattr(rule, key, value)

            await session.commit()
            logger.info(f"规则已更新: [{rule.name}] id={rule.id}")
            return rule

    async def delete_rule(self, rule_id: int) -> bool:
        async with self._session("delete") as session:
            result = await session.execute(
                delete(OrganizationRule).where(OrganizationRule.id == rule_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def increment_rule_match_count(self, rule_id: int) -> None:
        async with self._session("update") as session:
            await session.execute(
                update(OrganizationRule)
                .where(OrganizationRule.id == rule_id)
                .values(match_count=OrganizationRule.match_count + 1)
            )
            await session.commit()

    # ------------------------------------------------------------------
    # 区域 / 类别 / 文件夹
    # ------------------------------------------------------------------

    async def get_areas(self) -> list[Area]:
        async with self._session("query") as session:
            result = await session.execute(select(Area).order_by(Area.range_start))
            return list(result.scalars().all())

    async def get_categories(self) -> list[Category]:
        async with self._session("query") as session:
            result = await session.execute(select(Category).order_by(Category.number))
            return list(result.scalars().all())

    async def get_folders(self) -> list[Folder]:
        async with self._session("query") as session:
            result = await session.execute(select(Folder).order_by(Folder.folder_number))
            return list(result.scalars().all())

    async def create_area(
        self, range_start: int, range_end: int, name: str, description: Optional[str] = None
    ) -> int:
        if not (0 <= range_start <= range_end <= 99):
            raise ValidationError("区域范围应在 00-99 之间且起始不大于结束", "range")

        async with self._session("insert") as session:
            overlap = await session.execute(
                select(Area.id).where(
                    Area.range_start <= range_end, Area.range_end >= range_start
                )
            )
            if overlap.first() is not None:
                raise ValidationError("区域范围与已有区域重叠", "range")

            area = Area(
                range_start=range_start,
                range_end=range_end,
                name=name,
                description=description,
            )
            session.add(area)
            await session.commit()
            return area.id

    async def create_category(
        self, number: int, name: str, description: Optional[str] = None
    ) -> int:
        """创建类别，所属区域由编号自动确定"""
        if not 0 <= number <= 99:
            raise ValidationError("类别编号应在 00-99 之间", "number")

        async with self._session("insert") as session:
            result = await session.execute(
                select(Area).where(Area.range_start <= number, Area.range_end >= number)
            )
            area = result.scalars().first()
            if area is None:
                raise ValidationError(f"没有覆盖编号 {number:02d} 的区域", "number")

            category = Category(
                number=number, area_id=area.id, name=name, description=description
            )
            session.add(category)
            await session.commit()
            return category.id

    async def delete_category(self, category_id: int) -> None:
        """删除类别；存在子文件夹时拒绝删除"""
        async with self._session("delete") as session:
            count = await session.scalar(
                select(func.count()).select_from(Folder).where(Folder.category_id == category_id)
            )
            if count:
                raise DatabaseError(
                    f"类别 {category_id} 下还有 {count} 个文件夹", "constraint"
                )
            await session.execute(delete(Category).where(Category.id == category_id))
            await session.commit()

    async def create_folder(
        self,
        folder_number: str,
        name: str,
        keywords: Optional[str] = None,
        storage_path: Optional[str] = None,
        description: Optional[str] = None,
    ) -> int:
        """创建文件夹，编号前两位必须对应已存在的类别"""
        folder_number = validate_folder_number(folder_number)
        category_number = int(folder_number[:2])

        async with self._session("insert") as session:
            result = await session.execute(
                select(Category).where(Category.number == category_number)
            )
            category = result.scalars().first()
            if category is None:
                raise ValidationError(
                    f"类别 {category_number:02d} 不存在", "folder_number"
                )

            folder = Folder(
                folder_number=folder_number,
                category_id=category.id,
                sequence=int(folder_number[3:]),
                name=name,
                keywords=keywords,
                storage_path=storage_path,
                description=description,
            )
            session.add(folder)
            await session.commit()
            return folder.id

    async def get_folder_by_number(self, folder_number: str) -> Optional[FolderContext]:
        """按编号查询文件夹，附带类别和区域信息"""
        async with self._session("query") as session:
            result = await session.execute(
                select(Folder, Category, Area)
                .join(Category, Folder.category_id == Category.id)
                .join(Area, Category.area_id == Area.id, isouter=True)
                .where(Folder.folder_number == folder_number)
            )
            row = result.first()
            if row is None:
                return None
            folder, category, area = row
            return FolderContext(
                id=folder.id,
                folder_number=folder.folder_number,
                name=folder.name,
                keywords=folder.keywords,
                storage_path=folder.storage_path,
                category_id=category.id,
                category_number=category.number,
                category_name=category.name,
                area_id=area.id if area else None,
                area_name=area.name if area else "",
                area_range_start=area.range_start if area else None,
                area_range_end=area.range_end if area else None,
            )

    # ------------------------------------------------------------------
    # 扫描结果
    # ------------------------------------------------------------------

    async def add_scanned_file(self, record: FileRecord) -> int:
        async with self._session("insert") as session:
            scanned = ScannedFile(
                scan_session_id=record.scan_session_id,
                filename=record.filename,
                path=record.path,
                parent_folder=record.parent_folder,
                file_extension=record.extension,
                file_type=record.file_type.value,
                file_size=record.size_bytes,
            )
            session.add(scanned)
            await session.commit()
            return scanned.id

    async def clear_scanned_files(self, session_id: str) -> int:
        async with self._session("delete") as session:
            result = await session.execute(
                delete(ScannedFile).where(ScannedFile.scan_session_id == session_id)
            )
            await session.commit()
            return result.rowcount

    async def get_scanned_files(self, session_id: str) -> list[FileRecord]:
        async with self._session("query") as session:
            result = await session.execute(
                select(ScannedFile)
                .where(ScannedFile.scan_session_id == session_id)
                .order_by(ScannedFile.id)
            )
            return [
                FileRecord(
                    filename=row.filename,
                    path=row.path,
                    extension=row.file_extension or "",
                    file_type=FileType(row.file_type or "other"),
                    size_bytes=row.file_size or 0,
                    scan_session_id=row.scan_session_id,
                )
                for row in result.scalars().all()
            ]

    async def update_scanned_file_suggestion(
        self, session_id: str, path: str, folder_number: str, confidence: Confidence
    ) -> None:
        async with self._session("update") as session:
            await session.execute(
                update(ScannedFile)
                .where(ScannedFile.scan_session_id == session_id, ScannedFile.path == path)
                .values(suggested_jd_folder=folder_number, suggestion_confidence=confidence.value)
            )
            await session.commit()

    # ------------------------------------------------------------------
    # 整理记录
    # ------------------------------------------------------------------

    async def record_organized_file(
        self,
        filename: str,
        original_path: str,
        current_path: str,
        folder_number: str,
        extension: str,
        file_type: str,
        size_bytes: int,
        matched_rule_id: Optional[int] = None,
        drive_id: Optional[int] = None,
    ) -> int:
        async with self._session("insert") as session:
            record = OrganizedFile(
                filename=filename,
                original_path=original_path,
                current_path=current_path,
                jd_folder_number=folder_number,
                file_extension=extension,
                file_type=file_type,
                file_size=size_bytes,
                matched_rule_id=matched_rule_id,
                storage_drive_id=drive_id,
                status=RecordStatus.MOVED.value,
            )
            session.add(record)
            await session.commit()
            return record.id

    async def update_organized_file(self, record_id: int, **patch) -> None:
        if "status" in patch and isinstance(patch["status"], RecordStatus):
            patch["status"] = patch["status"].value
        async with self._session("update") as session:
            result = await session.execute(
                update(OrganizedFile)
                .where(OrganizedFile.id == record_id)
                .values(**patch, updated_at=datetime.now())
            )
            await session.commit()
            if result.rowcount == 0:
                raise NotFoundError(f"整理记录不存在: {record_id}", "organized_file")

    async def get_organized_file(self, record_id: int) -> Optional[OrganizedFileInfo]:
        async with self._session("query") as session:
            record = await session.get(OrganizedFile, record_id)
            return _to_organized_info(record) if record else None

    async def get_organized_files(
        self, status: Optional[str] = None, offset: int = 0, limit: int = 20
    ) -> tuple[int, list[OrganizedFileInfo]]:
        """分页查询整理记录，返回 (总数, 当前页)"""
        async with self._session("query") as session:
            count_stmt = select(func.count()).select_from(OrganizedFile)
            stmt = select(OrganizedFile).order_by(OrganizedFile.id.desc())
            if status:
                count_stmt = count_stmt.where(OrganizedFile.status == status)
                stmt = stmt.where(OrganizedFile.status == status)
            total = await session.scalar(count_stmt)
            result = await session.execute(stmt.offset(offset).limit(limit))
            return total or 0, [_to_organized_info(r) for r in result.scalars().all()]

    # ------------------------------------------------------------------
    # 存储盘
    # ------------------------------------------------------------------

    async def create_drive(
        self,
        name: str,
        base_path: str,
        jd_root_path: Optional[str] = None,
        is_default: bool = False,
    ) -> int:
        async with self._session("insert") as session:
            if is_default:
                await session.execute(update(StorageDrive).values(is_default=False))
            drive = StorageDrive(
                name=name,
                base_path=base_path,
                jd_root_path=jd_root_path,
                is_default=is_default,
                is_active=True,
            )
            session.add(drive)
            await session.commit()
            return drive.id

    async def get_default_drive(self) -> Optional[StorageDrive]:
        async with self._session("query") as session:
            result = await session.execute(
                select(StorageDrive).where(
                    StorageDrive.is_default.is_(True), StorageDrive.is_active.is_(True)
                )
            )
            return result.scalars().first()

    async def get_drive(self, drive_id: int) -> Optional[StorageDrive]:
        async with self._session("query") as session:
            return await session.get(StorageDrive, drive_id)

    # ------------------------------------------------------------------
    # 监控目录
    # ------------------------------------------------------------------

    async def create_watched_folder(
        self,
        name: str,
        path: str,
        auto_organize: bool = False,
        confidence_threshold: Confidence = Confidence.MEDIUM,
        include_subdirs: bool = False,
        file_types: Optional[list[str]] = None,
        notify_on_organize: bool = True,
    ) -> int:
        async with self._session("insert") as session:
            folder = WatchedFolder(
                name=name,
                path=path,
                auto_organize=auto_organize,
                confidence_threshold=Confidence(confidence_threshold).value,
                include_subdirs=include_subdirs,
                file_types=",".join(file_types) if file_types else None,
                notify_on_organize=notify_on_organize,
            )
            session.add(folder)
            await session.commit()
            return folder.id

    async def get_watched_folder(self, folder_id: int) -> Optional[WatchedFolder]:
        async with self._session("query") as session:
            return await session.get(WatchedFolder, folder_id)

    async def get_watched_folders(self, active_only: bool = True) -> list[WatchedFolder]:
        async with self._session("query") as session:
            stmt = select(WatchedFolder).order_by(WatchedFolder.id)
            if active_only:
                stmt = stmt.where(WatchedFolder.is_active.is_(True))
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def increment_watched_folder_stats(
        self, folder_id: int, processed: int = 0, organized: int = 0
    ) -> None:
        async with self._session("update") as session:
            await session.execute(
                update(WatchedFolder)
                .where(WatchedFolder.id == folder_id)
                .values(
                    files_processed=WatchedFolder.files_processed + processed,
                    files_organized=WatchedFolder.files_organized + organized,
                    last_checked_at=datetime.now(),
                )
            )
            await session.commit()

    async def log_watch_activity(
        self,
        folder_id: int,
        filename: str,
        path: str,
        action: str,
        file_size: Optional[int] = None,
        file_type: Optional[str] = None,
        matched_folder_number: Optional[str] = None,
        moved_to_path: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        async with self._session("insert") as session:
            session.add(
                WatchActivity(
                    watched_folder_id=folder_id,
                    filename=filename,
                    path=path,
                    action=action,
                    file_size=file_size,
                    file_type=file_type,
                    matched_folder_number=matched_folder_number,
                    moved_to_path=moved_to_path,
                    error_message=error_message,
                )
            )
            await session.commit()

    async def get_watch_activity(
        self, folder_id: int, limit: int = 100
    ) -> list[WatchActivity]:
        async with self._session("query") as session:
            result = await session.execute(
                select(WatchActivity)
                .where(WatchActivity.watched_folder_id == folder_id)
                .order_by(WatchActivity.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # 批量重命名撤销日志
    # ------------------------------------------------------------------

    async def save_undo_log(self, undo_id: str, entries: list[UndoLogEntry]) -> None:
        """保存撤销日志，超过上限时删除最旧的批次"""
        async with self._session("insert") as session:
            session.add(
                RenameUndoLog(
                    undo_id=undo_id,
                    entries=[entry.model_dump() for entry in entries],
                )
            )
            await session.flush()

            result = await session.execute(
                select(RenameUndoLog.id)
                .order_by(RenameUndoLog.id.desc())
                .offset(self._max_undo_logs)
            )
            stale_ids = [row[0] for row in result.fetchall()]
            if stale_ids:
                await session.execute(
                    delete(RenameUndoLog).where(RenameUndoLog.id.in_(stale_ids))
                )
                logger.debug(f"清理过期的撤销日志: {len(stale_ids)} 条")
            await session.commit()

    async def get_undo_log(self, undo_id: str) -> Optional[list[UndoLogEntry]]:
        async with self._session("query") as session:
            result = await session.execute(
                select(RenameUndoLog).where(RenameUndoLog.undo_id == undo_id)
            )
            log = result.scalars().first()
            if log is None:
                return None
            return [UndoLogEntry(**entry) for entry in log.entries]

    async def get_latest_undo_id(self) -> Optional[str]:
        async with self._session("query") as session:
            return await session.scalar(
                select(RenameUndoLog.undo_id).order_by(RenameUndoLog.id.desc()).limit(1)
            )

    async def count_undo_logs(self) -> int:
        async with self._session("query") as session:
            return await session.scalar(select(func.count()).select_from(RenameUndoLog)) or 0

    async def remove_undo_log(self, undo_id: str) -> None:
        async with self._session("delete") as session:
            await session.execute(
                delete(RenameUndoLog).where(RenameUndoLog.undo_id == undo_id)
            )
            await session.commit()
