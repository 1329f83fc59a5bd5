"""
@description 文件系统访问适配器
@responsibility 以异步接口封装本地文件系统操作，阻塞调用放到线程中执行
"""

import asyncio
import hashlib
import os
import shutil
import stat
from dataclasses import dataclass


@dataclass(frozen=True)
class FileStat:
    size: int
    mtime: float
    is_file: bool
    is_dir: bool


@dataclass(frozen=True)
class DirEntry:
    name: str
    is_file: bool
    is_dir: bool
    is_symlink: bool


class LocalFileSystem:
    """本地文件系统，所有方法失败时抛出 OSError，由调用方转换为 FileSystemError"""

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(os.path.lexists, path)

    async def stat(self, path: str) -> FileStat:
        st = await asyncio.to_thread(os.stat, path)
        return FileStat(
            size=st.st_size,
            mtime=st.st_mtime,
            is_file=stat.S_ISREG(st.st_mode),
            is_dir=stat.S_ISDIR(st.st_mode),
        )

    async def readdir(self, path: str) -> list[DirEntry]:
        """列出目录项，不跟随符号链接"""
        return await asyncio.to_thread(self._readdir_sync, path)

    async def rename(self, source: str, destination: str) -> None:
        # os.replace 在各平台上都会覆盖已存在的目标
        await asyncio.to_thread(os.replace, source, destination)

    async def copy_file(self, source: str, destination: str) -> None:
        await asyncio.to_thread(shutil.copy2, source, destination)

    async def unlink(self, path: str) -> None:
        await asyncio.to_thread(os.unlink, path)

    async def mkdir(self, path: str, parents: bool = True) -> None:
        if parents:
            await asyncio.to_thread(os.makedirs, path, exist_ok=True)
        else:
            await asyncio.to_thread(os.mkdir, path)

    async def realpath(self, path: str) -> str:
        return await asyncio.to_thread(os.path.realpath, path)

    async def file_digest(self, path: str) -> str:
        """计算文件的 sha256"""
        return await asyncio.to_thread(self._digest_sync, path)

    @staticmethod
    def _readdir_sync(path: str) -> list[DirEntry]:
        entries = []
        with os.scandir(path) as it:
            for entry in it:
                is_symlink = entry.is_symlink()
                entries.append(
                    DirEntry(
                        name=entry.name,
                        is_file=entry.is_file(follow_symlinks=False),
                        is_dir=entry.is_dir(follow_symlinks=False),
                        is_symlink=is_symlink,
                    )
                )
        return entries

    @staticmethod
    def _digest_sync(path: str) -> str:
        digest = hashlib.sha256()
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                digest.update(chunk)
        return digest.hexdigest()
