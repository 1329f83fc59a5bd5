"""
@description 数据库模型的单元测试
@responsibility 验证建表、外键约束、默认值以及 Store 对约束错误的包装
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from jdex.core.database import Base, create_session_factory, get_session
from jdex.core.errors import DatabaseError, ValidationError
from jdex.models.hierarchy import Area, Category, Folder
from jdex.models.organization_rule import OrganizationRule
from jdex.models.rename_undo_log import RenameUndoLog
from jdex.models.watched_folder import WatchActivity, WatchedFolder
from jdex.schemas.rename import UndoLogEntry


@pytest.fixture
def async_session(db_engine):
    return create_session_factory(db_engine)


@pytest.mark.asyncio
async def test_create_tables(db_engine):
    """测试数据库表创建"""
    expected = {
        "areas",
        "categories",
        "folders",
        "organization_rules",
        "organized_files",
        "scanned_files",
        "storage_drives",
        "watched_folders",
        "watch_activity",
        "rename_undo_logs",
    }
    assert expected <= set(Base.metadata.tables)

    async with db_engine.connect() as conn:
        for table in expected:
            result = await conn.execute(select(1).select_from(Base.metadata.tables[table]))
            assert result.scalar() is None


@pytest.mark.asyncio
async def test_rule_defaults(async_session):
    """测试规则的默认值"""
    async with get_session(async_session) as session:
        rule = OrganizationRule(
            name="PDF",
            rule_type="extension",
            pattern="pdf",
            target_type="folder",
            target_id="12.03",
        )
        session.add(rule)
        await session.commit()

        fetched = (await session.execute(select(OrganizationRule))).scalar_one()
        assert fetched.priority == 50
        assert fetched.is_active is True
        assert fetched.match_count == 0
        assert fetched.created_at is not None


@pytest.mark.asyncio
async def test_category_requires_existing_area(async_session):
    """外键约束：类别必须属于已存在的区域"""
    with pytest.raises(IntegrityError):
        async with get_session(async_session) as session:
            session.add(Category(number=11, area_id=999, name="Orphan"))
            await session.commit()


@pytest.mark.asyncio
async def test_area_delete_restricted(async_session, hierarchy):
    """存在类别时不能删除区域"""
    with pytest.raises(IntegrityError):
        async with get_session(async_session) as session:
            area = (
                await session.execute(select(Area).where(Area.range_start == 10))
            ).scalar_one()
            await session.delete(area)
            await session.commit()


@pytest.mark.asyncio
async def test_watch_activity_cascade(async_session):
    """删除监控目录时一并删除其活动日志"""
    async with get_session(async_session) as session:
        folder = WatchedFolder(name="Inbox", path="/tmp/inbox")
        session.add(folder)
        await session.flush()
        session.add(
            WatchActivity(
                watched_folder_id=folder.id,
                filename="a.pdf",
                path="/tmp/inbox/a.pdf",
                action="detected",
            )
        )
        await session.commit()

        await session.delete(folder)
        await session.commit()

        remaining = (await session.execute(select(WatchActivity))).scalars().all()
        assert remaining == []


class TestStoreConstraints:
    """Store 对层级约束的处理"""

    @pytest.mark.asyncio
    async def test_delete_category_with_folders_refused(self, store, hierarchy, async_session):
        async with get_session(async_session) as session:
            category = (
                await session.execute(select(Category).where(Category.number == 12))
            ).scalar_one()

        with pytest.raises(DatabaseError) as exc_info:
            await store.delete_category(category.id)
        assert exc_info.value.operation == "constraint"

    @pytest.mark.asyncio
    async def test_delete_empty_category(self, store, hierarchy):
        await store.create_category(13, "Taxes")
        categories = {c.number: c.id for c in await store.get_categories()}

        await store.delete_category(categories[13])

        assert 13 not in {c.number for c in await store.get_categories()}

    @pytest.mark.asyncio
    async def test_duplicate_folder_number(self, store, hierarchy):
        with pytest.raises(DatabaseError) as exc_info:
            await store.create_folder("12.03", "Paid again")
        assert exc_info.value.operation == "constraint"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("start,end", [(15, 25), (5, 10), (30, 20), (90, 100)])
    async def test_invalid_area_range(self, store, hierarchy, start, end):
        with pytest.raises(ValidationError):
            await store.create_area(start, end, "Bad")

    @pytest.mark.asyncio
    async def test_category_outside_areas(self, store, hierarchy):
        with pytest.raises(ValidationError):
            await store.create_category(45, "Nowhere")

    @pytest.mark.asyncio
    async def test_folder_needs_category(self, store, hierarchy):
        with pytest.raises(ValidationError):
            await store.create_folder("13.01", "No category")

    @pytest.mark.asyncio
    async def test_folder_context(self, store, hierarchy, async_session):
        folder = await store.get_folder_by_number("21.01")

        assert folder.name == "Holidays"
        assert folder.category_number == 21
        assert folder.category_name == "Photos"
        assert folder.area_name == "Media"
        assert (folder.area_range_start, folder.area_range_end) == (20, 29)

        async with get_session(async_session) as session:
            row = (
                await session.execute(select(Folder).where(Folder.folder_number == "21.01"))
            ).scalar_one()
        assert row.sequence == 1


class TestUndoLogs:
    """撤销日志以 JSON 保存，并按上限清理"""

    @pytest.mark.asyncio
    async def test_entries_round_trip(self, store, async_session):
        entry = UndoLogEntry(
            original_path="/tmp/a.txt",
            renamed_path="/tmp/b.txt",
            original_name="a.txt",
            new_name="b.txt",
        )
        await store.save_undo_log("undo-1", [entry])

        assert await store.get_undo_log("undo-1") == [entry]
        async with get_session(async_session) as session:
            row = (await session.execute(select(RenameUndoLog))).scalar_one()
        assert row.entries[0]["new_name"] == "b.txt"

    @pytest.mark.asyncio
    async def test_cap_drops_oldest(self, store):
        entry = UndoLogEntry(
            original_path="/tmp/a.txt",
            renamed_path="/tmp/b.txt",
            original_name="a.txt",
            new_name="b.txt",
        )
        for i in range(5):
            await store.save_undo_log(f"undo-{i}", [entry])

        assert await store.count_undo_logs() == 3
        assert await store.get_undo_log("undo-0") is None
        assert await store.get_latest_undo_id() == "undo-4"
