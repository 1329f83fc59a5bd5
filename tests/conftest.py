"""
@description 测试公共夹具
@responsibility 提供临时数据库、Store、本地文件系统以及一套基础的 Johnny Decimal 层级
"""

import pytest
import pytest_asyncio

from jdex.core.database import create_engine_for, create_session_factory, init_db
from jdex.services.filesystem import LocalFileSystem
from jdex.services.store import Store


@pytest_asyncio.fixture
async def db_engine(tmp_path_factory):
    """每个测试使用独立的 sqlite 文件，与 tmp_path 分开存放"""
    db_dir = tmp_path_factory.mktemp("db")
    engine = create_engine_for(f"sqlite+aiosqlite:///{db_dir / 'test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(db_engine):
    return Store(create_session_factory(db_engine), max_undo_logs=3)


@pytest.fixture
def fs():
    return LocalFileSystem()


@pytest_asyncio.fixture
async def hierarchy(store):
    """
    10-19 Finance
      11 Reference -> 11.01 Manuals
      12 Invoices  -> 12.03 Paid
    20-29 Media
      21 Photos    -> 21.01 Holidays
    """
    await store.create_area(10, 19, "Finance")
    await store.create_area(20, 29, "Media")
    await store.create_category(11, "Reference")
    await store.create_category(12, "Invoices")
    await store.create_category(21, "Photos")
    folders = {
        "11.01": await store.create_folder("11.01", "Manuals", keywords="manual,guide"),
        "12.03": await store.create_folder("12.03", "Paid", keywords="invoice,receipt"),
        "21.01": await store.create_folder("21.01", "Holidays", keywords="vacation"),
    }
    return folders


@pytest.fixture
def write_file():
    """写入测试文件（自动创建父目录），返回路径字符串"""

    def _write(path, content: bytes = b"x") -> str:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return str(path)

    return _write
