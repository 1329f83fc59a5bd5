"""
@description 目标路径构建测试
@responsibility 验证三级目录推导、存储根目录选择、名称清洗和越界防护
"""

import os

import pytest

from jdex.core.errors import FileSystemError, PathSecurityError, ValidationError
from jdex.services.path_builder import DestinationPathBuilder


@pytest.fixture
def base(tmp_path):
    return str(tmp_path / "jd")


@pytest.fixture
def builder(store, fs, base):
    return DestinationPathBuilder(store, fs, base)


class TestBuild:
    """路径构建"""

    @pytest.mark.asyncio
    async def test_hierarchy_layout(self, builder, base, hierarchy):
        destination = await builder.build("12.03", "invoice.pdf")

        assert destination.base_path == base
        assert destination.folder_path == os.path.join(
            base, "10-19 Finance", "12 Invoices", "12.03 Paid"
        )
        assert destination.full_path == os.path.join(destination.folder_path, "invoice.pdf")
        assert destination.folder.folder_number == "12.03"
        # 只计算路径，不创建目录
        assert not os.path.exists(destination.folder_path)

    @pytest.mark.asyncio
    async def test_filename_sanitized(self, builder, hierarchy):
        destination = await builder.build("11.01", 'a:b?.pdf')
        assert os.path.basename(destination.full_path) == "a_b_.pdf"

    @pytest.mark.asyncio
    async def test_default_drive(self, store, builder, tmp_path, hierarchy):
        await store.create_drive("Backup", str(tmp_path / "other"))
        await store.create_drive("Main", str(tmp_path / "drive"), is_default=True)

        destination = await builder.build("11.01", "a.pdf")
        assert destination.base_path == str(tmp_path / "drive")

    @pytest.mark.asyncio
    async def test_explicit_drive_with_jd_root(self, store, builder, tmp_path, hierarchy):
        drive_id = await store.create_drive(
            "NAS", str(tmp_path / "nas"), jd_root_path=str(tmp_path / "nas" / "JD")
        )
        destination = await builder.build("11.01", "a.pdf", drive_id=drive_id)
        assert destination.base_path == str(tmp_path / "nas" / "JD")

    @pytest.mark.asyncio
    async def test_unknown_drive_falls_back(self, builder, base, hierarchy):
        destination = await builder.build("11.01", "a.pdf", drive_id=999)
        assert destination.base_path == base


class TestBuildErrors:
    """构建失败场景"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("number", ["1.1", "11-01", "abc"])
    async def test_bad_number(self, builder, number):
        with pytest.raises(ValidationError):
            await builder.build(number, "a.pdf")

    @pytest.mark.asyncio
    async def test_missing_folder(self, builder, hierarchy):
        with pytest.raises(FileSystemError) as exc_info:
            await builder.build("11.99", "a.pdf")
        assert exc_info.value.operation == "build_path"

    @pytest.mark.asyncio
    async def test_filesystem_unavailable(self, store, base):
        with pytest.raises(FileSystemError) as exc_info:
            await DestinationPathBuilder(store, None, base).build("11.01", "a.pdf")
        assert exc_info.value.operation == "unavailable"


class TestContainment:
    """越界防护"""

    @pytest.mark.asyncio
    async def test_traversal_names_stay_inside(self, store, builder, base, hierarchy):
        await store.create_folder("11.02", "../../etc")

        destination = await builder.build("11.02", "../../etc/passwd")

        assert destination.full_path.startswith(base + os.sep)
        assert ".." not in destination.full_path.split(os.sep)

    @pytest.mark.asyncio
    async def test_symlink_escape_rejected(self, builder, base, tmp_path, hierarchy):
        """存储目录中的符号链接指向根目录之外时拒绝"""
        outside = tmp_path / "outside"
        outside.mkdir()
        os.makedirs(base)
        os.symlink(outside, os.path.join(base, "10-19 Finance"))

        with pytest.raises(PathSecurityError):
            await builder.build("12.03", "invoice.pdf")
