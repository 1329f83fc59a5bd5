"""
@description 应用上下文
@responsibility 在应用启动时组装所有服务实例，并通过 FastAPI 依赖注入提供给路由
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from jdex.core.config import Config
from jdex.core.database import create_engine_for, create_session_factory
from jdex.services.batch_rename import BatchRenamer
from jdex.services.file_organizer import FileOrganizer
from jdex.services.filesystem import LocalFileSystem
from jdex.services.matching_engine import MatchingEngine
from jdex.services.path_builder import DestinationPathBuilder
from jdex.services.scanner import FileScanner
from jdex.services.store import Store
from jdex.tasks.watcher import WatchPipeline


@dataclass
class AppContext:
    config: Config
    db_engine: AsyncEngine
    store: Store
    fs: Optional[LocalFileSystem]
    engine: MatchingEngine
    scanner: FileScanner
    path_builder: DestinationPathBuilder
    organizer: FileOrganizer
    renamer: BatchRenamer
    watcher: WatchPipeline


def build_context(config: Config, fs: Optional[LocalFileSystem] = None) -> AppContext:
    """
    按配置创建所有服务

    Args:
        config: 全局配置
        fs: 文件系统适配器，为 None 时使用本地文件系统
    """
    fs = fs if fs is not None else LocalFileSystem()
    db_engine = create_engine_for(config.database.url)
    store = Store(
        create_session_factory(db_engine), max_undo_logs=config.rename.max_undo_logs
    )

    engine = MatchingEngine(
        store,
        cache_ttl=config.matching.cache_ttl_seconds,
        regex_timeout=config.matching.regex_timeout_ms / 1000,
    )
    scanner = FileScanner(
        store,
        fs,
        allowed_roots=config.storage.allowed_roots,
        progress_interval=config.scanner.progress_interval,
    )
    path_builder = DestinationPathBuilder(store, fs, config.storage.fallback_root)
    organizer = FileOrganizer(
        store,
        fs,
        path_builder,
        allowed_roots=config.storage.allowed_roots,
        batch_delay=config.operations.batch_delay_ms / 1000,
        max_rename_attempts=config.operations.max_rename_attempts,
        verify_copies=config.operations.verify_copies,
    )
    renamer = BatchRenamer(store, fs)
    watcher = WatchPipeline(
        store,
        engine,
        organizer,
        fs,
        debounce_seconds=config.watcher.debounce_ms / 1000,
    )

    return AppContext(
        config=config,
        db_engine=db_engine,
        store=store,
        fs=fs,
        engine=engine,
        scanner=scanner,
        path_builder=path_builder,
        organizer=organizer,
        renamer=renamer,
        watcher=watcher,
    )


def get_context(request: Request) -> AppContext:
    """FastAPI 依赖：取出 lifespan 中创建的上下文"""
    return request.app.state.context
