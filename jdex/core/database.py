"""
@description 异步数据库连接管理
@responsibility 提供 SQLAlchemy 异步引擎、会话工厂和数据库初始化
"""

from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./db/jdex.db"

Base = declarative_base()


def create_engine_for(database_url: str = DEFAULT_DATABASE_URL) -> AsyncEngine:
    """
    创建异步引擎

    sqlite 文件数据库会自动创建所在目录，并开启外键约束。
    """
    url = make_url(database_url)
    is_sqlite = url.get_backend_name() == "sqlite"

    if is_sqlite and url.database and url.database != ":memory:":
        Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        database_url,
        echo=False,
        connect_args={"check_same_thread": False} if is_sqlite else {},
    )

    if is_sqlite:

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    """创建异步会话工厂"""
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    初始化数据库，创建所有表
    """
    # 导入所有模型，确保在 Base.metadata 中注册
    from jdex.models.hierarchy import Area, Category, Folder
    from jdex.models.organization_rule import OrganizationRule
    from jdex.models.organized_file import OrganizedFile
    from jdex.models.rename_undo_log import RenameUndoLog
    from jdex.models.scanned_file import ScannedFile
    from jdex.models.storage_drive import StorageDrive
    from jdex.models.watched_folder import WatchActivity, WatchedFolder

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session(session_factory: sessionmaker):
    """
    异步会话上下文管理器
    """
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
