"""
@description 目标路径构建
@responsibility 由文件夹编号推导 区域/类别/文件夹 三级目录，清洗各级名称并保证结果不越出存储根目录
"""

import os
from typing import Optional

from loguru import logger

from jdex.core.errors import FileSystemError, PathSecurityError
from jdex.schemas.matching import FolderContext
from jdex.schemas.operations import DestinationPath
from jdex.utils.sanitizer import sanitize_filename, sanitize_folder_name
from jdex.utils.validation import is_path_within_base, validate_folder_number

DEFAULT_FALLBACK_ROOT = "~/JohnnyDecimal"


def area_folder_name(folder: FolderContext) -> str:
    """区域目录名，例如 "10-19 Finance"；范围由类别编号推导"""
    start = (folder.category_number // 10) * 10
    end = start + 9
    name = sanitize_folder_name(folder.area_name, "Area")
    return f"{start:02d}-{end:02d} {name}"


def category_folder_name(folder: FolderContext) -> str:
    name = sanitize_folder_name(folder.category_name, "Category")
    return f"{folder.category_number:02d} {name}"


def jd_folder_name(folder: FolderContext) -> str:
    name = sanitize_folder_name(folder.name, "Folder")
    return f"{folder.folder_number} {name}"


class DestinationPathBuilder:
    """目标路径构建器，只计算路径，不创建目录"""

    def __init__(self, store, fs, fallback_root: str = DEFAULT_FALLBACK_ROOT):
        self._store = store
        self._fs = fs
        self._fallback_root = fallback_root

    async def resolve_base_path(self, drive_id: Optional[int] = None) -> str:
        """
        确定存储根目录：指定的存储盘 -> 默认存储盘 -> 用户目录下的兜底目录
        """
        drive = None
        if drive_id is not None:
            drive = await self._store.get_drive(drive_id)
            if drive is None:
                logger.warning(f"存储盘 {drive_id} 不存在，使用默认存储盘")
        if drive is None:
            drive = await self._store.get_default_drive()

        if drive is not None:
            base = drive.jd_root_path or drive.base_path
        else:
            base = self._fallback_root
        return os.path.abspath(os.path.expanduser(base))

    async def build(
        self, folder_number: str, filename: str, drive_id: Optional[int] = None
    ) -> DestinationPath:
        """
        构建目标路径

        Args:
            folder_number: 目标文件夹编号 CC.NN
            filename: 文件名（会被清洗）
            drive_id: 指定的存储盘 ID

        Returns:
            DestinationPath(base_path, folder_path, full_path, folder)

        Raises:
            ValidationError: 编号格式错误
            FileSystemError: 文件系统不可用或文件夹不存在
            PathSecurityError: 路径越出存储根目录
        """
        if self._fs is None:
            raise FileSystemError("文件系统不可用", "unavailable")

        folder_number = validate_folder_number(folder_number)
        folder = await self._store.get_folder_by_number(folder_number)
        if folder is None:
            raise FileSystemError(f"文件夹 {folder_number} 不存在", "build_path")

        base_path = await self.resolve_base_path(drive_id)
        folder_path = os.path.abspath(
            os.path.join(
                base_path,
                area_folder_name(folder),
                category_folder_name(folder),
                jd_folder_name(folder),
            )
        )
        full_path = os.path.abspath(os.path.join(folder_path, sanitize_filename(filename)))

        await self._ensure_within_base(full_path, base_path)

        return DestinationPath(
            base_path=base_path,
            folder_path=folder_path,
            full_path=full_path,
            folder=folder,
        )

    async def _ensure_within_base(self, full_path: str, base_path: str) -> None:
        """路径本身和解析符号链接后的真实路径都必须位于根目录内"""
        if not is_path_within_base(full_path, base_path):
            logger.error(f"目标路径越出根目录: {full_path} (base={base_path})")
            raise PathSecurityError(f"目标路径越出根目录: {full_path}")

        real_base = await self._fs.realpath(base_path)
        real_full = await self._fs.realpath(full_path)
        if not is_path_within_base(real_full, real_base):
            logger.error(f"目标真实路径越出根目录: {real_full} (base={real_base})")
            raise PathSecurityError(f"目标真实路径越出根目录: {real_full}")
