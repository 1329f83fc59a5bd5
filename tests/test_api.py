"""
@description API 接口测试
@responsibility 通过 ASGI 传输调用各个接口，验证统一响应格式、错误码映射和端到端流程
"""

import os

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from jdex.core.config import (
    Config,
    DatabaseConfig,
    OperationsConfig,
    StorageConfig,
    WatcherConfig,
)
from jdex.core.context import build_context
from jdex.core.database import get_session, init_db
from jdex.core.errors import FileSystemError
from jdex.models.scanned_file import ScannedFile
from main import app


@pytest.fixture
def api_config(tmp_path, tmp_path_factory):
    db_dir = tmp_path_factory.mktemp("api-db")
    return Config(
        database=DatabaseConfig(url=f"sqlite+aiosqlite:///{db_dir / 'api.db'}"),
        storage=StorageConfig(fallback_root=str(tmp_path / "jd"), allowed_roots=[str(tmp_path)]),
        operations=OperationsConfig(batch_delay_ms=0),
        watcher=WatcherConfig(debounce_ms=0),
    )


@pytest_asyncio.fixture
async def context(api_config):
    """不经过 lifespan，直接把上下文挂到应用上"""
    ctx = build_context(api_config)
    await init_db(ctx.db_engine)
    app.state.context = ctx
    yield ctx
    await ctx.db_engine.dispose()


@pytest_asyncio.fixture
async def api_hierarchy(context):
    store = context.store
    await store.create_area(10, 19, "Finance")
    await store.create_category(12, "Invoices")
    await store.create_folder("12.03", "Paid", keywords="invoice,receipt")


@pytest_asyncio.fixture
async def client(context):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def inbox(tmp_path, write_file):
    root = tmp_path / "inbox"
    write_file(root / "invoice-2024.pdf", b"%PDF-1.4")
    write_file(root / "notes.txt", b"hello")
    return root


async def _create_pdf_rule(client) -> int:
    response = await client.post(
        "/api/rules",
        json={
            "name": "PDF 发票",
            "rule_type": "extension",
            "pattern": "pdf",
            "target_type": "folder",
            "target_id": "12.03",
        },
    )
    assert response.status_code == 200
    return response.json()["data"]["id"]


class TestRoot:
    @pytest.mark.asyncio
    async def test_root_and_health(self, client):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["data"]["version"] == "1.0.0"

        response = await client.get("/health")
        assert response.json()["data"] == {"status": "healthy"}


class TestRules:
    @pytest.mark.asyncio
    async def test_rule_crud(self, client, api_hierarchy):
        rule_id = await _create_pdf_rule(client)

        response = await client.get("/api/rules")
        data = response.json()
        assert data["code"] == 0
        assert [r["id"] for r in data["data"]] == [rule_id]

        response = await client.put(f"/api/rules/{rule_id}", json={"name": "所有 PDF"})
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "所有 PDF"

        response = await client.delete(f"/api/rules/{rule_id}")
        assert response.status_code == 200

        response = await client.delete(f"/api/rules/{rule_id}")
        assert response.status_code == 404
        assert response.json()["data"] == {"error": "NOT_FOUND"}

    @pytest.mark.asyncio
    async def test_invalid_pattern_rejected(self, client):
        response = await client.post(
            "/api/rules",
            json={
                "name": "坏正则",
                "rule_type": "regex",
                "pattern": "(unclosed",
                "target_type": "folder",
                "target_id": "12.03",
            },
        )

        assert response.status_code == 400
        data = response.json()
        assert data["code"] == 400
        assert data["data"] == {"error": "VALIDATION_ERROR"}

    @pytest.mark.asyncio
    async def test_missing_fields(self, client):
        response = await client.post("/api/rules", json={"name": "x"})

        assert response.status_code == 422
        assert response.json()["message"] == "请求参数验证失败"


class TestScanAndMatch:
    @pytest.mark.asyncio
    async def test_scan_then_match(self, client, context, api_hierarchy, inbox):
        await _create_pdf_rule(client)

        response = await client.post("/api/scan", json={"root_path": str(inbox)})
        assert response.status_code == 200
        scan = response.json()["data"]
        assert scan["stats"]["total_files"] == 2

        response = await client.get(f"/api/scan/{scan['session_id']}/files")
        files = response.json()["data"]
        assert sorted(f["filename"] for f in files) == ["invoice-2024.pdf", "notes.txt"]

        response = await client.post("/api/match", json={"files": files})
        assert response.status_code == 200
        results = {r["file"]["filename"]: r["suggestions"] for r in response.json()["data"]}
        assert results["invoice-2024.pdf"][0]["target_folder"]["folder_number"] == "12.03"
        assert results["invoice-2024.pdf"][0]["confidence"] == "high"

        # 扫描记录上保存了最佳建议
        async with get_session(context.store._session_factory) as session:
            row = (
                await session.execute(
                    select(ScannedFile).where(ScannedFile.filename == "invoice-2024.pdf")
                )
            ).scalar_one()
        assert (row.suggested_jd_folder, row.suggestion_confidence) == ("12.03", "high")

    @pytest.mark.asyncio
    async def test_scan_missing_directory(self, client, tmp_path):
        response = await client.post("/api/scan", json={"root_path": str(tmp_path / "missing")})

        assert response.status_code == 500
        data = response.json()
        assert data["message"] == FileSystemError.USER_MESSAGES["scan"]
        assert str(tmp_path) not in data["message"]

    @pytest.mark.asyncio
    async def test_progress_and_cancel_when_idle(self, client):
        response = await client.get("/api/scan/progress")
        assert response.json()["data"]["scanned_files"] == 0

        response = await client.post("/api/scan/cancel")
        assert response.json()["data"]["cancelled"] is False


class TestOrganize:
    @pytest.mark.asyncio
    async def test_move_records_and_rollback(self, client, api_hierarchy, inbox, tmp_path):
        rule_id = await _create_pdf_rule(client)
        source = str(inbox / "invoice-2024.pdf")

        response = await client.post(
            "/api/organize/preview",
            json={"operations": [{"source_path": source, "folder_number": "12.03"}]},
        )
        preview = response.json()["data"][0]
        assert preview["source_exists"] is True
        assert preview["would_conflict"] is False

        response = await client.post(
            "/api/organize/move",
            json={"source_path": source, "folder_number": "12.03", "matched_rule_id": rule_id},
        )
        assert response.status_code == 200
        move = response.json()["data"]
        expected = tmp_path / "jd" / "10-19 Finance" / "12 Invoices" / "12.03 Paid" / "invoice-2024.pdf"
        assert move["destination_path"] == str(expected)
        assert expected.exists()
        assert not os.path.exists(source)

        rules = (await client.get("/api/rules")).json()["data"]
        assert rules[0]["match_count"] == 1

        response = await client.get("/api/organize/records", params={"status": "moved"})
        records = response.json()["data"]
        assert records["total"] == 1

        record_id = move["record_id"]
        response = await client.post(f"/api/organize/rollback/{record_id}")
        assert response.status_code == 200
        assert os.path.exists(source)

        response = await client.post(f"/api/organize/rollback/{record_id}")
        assert response.status_code == 500
        assert response.json()["message"] == FileSystemError.USER_MESSAGES["rollback"]

    @pytest.mark.asyncio
    async def test_batch_move(self, client, api_hierarchy, inbox):
        rule_id = await _create_pdf_rule(client)

        response = await client.post(
            "/api/organize/batch",
            json={
                "operations": [
                    {
                        "source_path": str(inbox / "invoice-2024.pdf"),
                        "folder_number": "12.03",
                        "matched_rule_id": rule_id,
                    },
                    {"source_path": str(inbox / "gone.pdf"), "folder_number": "12.03"},
                ]
            },
        )

        data = response.json()["data"]
        assert (data["total"], data["success"], data["failed"]) == (2, 1, 1)
        rules = (await client.get("/api/rules")).json()["data"]
        assert rules[0]["match_count"] == 1

    @pytest.mark.asyncio
    async def test_invalid_folder_number(self, client, inbox):
        response = await client.post(
            "/api/organize/move",
            json={"source_path": str(inbox / "notes.txt"), "folder_number": "1203"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_records_bad_status(self, client):
        response = await client.get("/api/organize/records", params={"status": "lost"})
        assert response.status_code == 422


class TestRename:
    @pytest.mark.asyncio
    async def test_preview_execute_undo(self, client, inbox):
        source = str(inbox / "notes.txt")

        response = await client.post(
            "/api/rename/preview",
            json={"file_paths": [source], "options": {"prefix": "2024_"}},
        )
        previews = response.json()["data"]
        assert previews[0]["new_name"] == "2024_notes.txt"

        response = await client.post("/api/rename/execute", json={"previews": previews})
        result = response.json()["data"]
        assert result["success"] == 1
        assert (inbox / "2024_notes.txt").exists()

        response = await client.post(f"/api/rename/undo/{result['undo_id']}")
        assert response.json()["data"]["restored"] == 1
        assert os.path.exists(source)

    @pytest.mark.asyncio
    async def test_traversal_rejected(self, client, inbox):
        response = await client.post(
            "/api/rename/preview",
            json={"file_paths": [f"{inbox}/../../etc/passwd"], "options": {"case": "upper"}},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_path_outside_allowed_roots(self, client):
        response = await client.post(
            "/api/rename/preview",
            json={"file_paths": ["/opt/elsewhere/a.txt"], "options": {"case": "upper"}},
        )
        assert response.status_code == 400


class TestStatus:
    @pytest.mark.asyncio
    async def test_get_status(self, client):
        response = await client.get("/api/status")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["watcher_running"] is False
        assert data["scan_running"] is False
        assert data["filesystem_available"] is True
        assert data["pending_events"] == 0
