"""
@description 批量重命名撤销日志数据模型
@responsibility 按批次保存重命名前后的文件名，供撤销使用
"""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String

from jdex.core.database import Base


class RenameUndoLog(Base):
    __tablename__ = "rename_undo_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    undo_id = Column(String(64), unique=True, nullable=False)
    # [{original_path, renamed_path, original_name, new_name}, ...]
    entries = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
