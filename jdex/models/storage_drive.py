"""
@description 存储盘数据模型
@responsibility 保存整理目标所在的存储根目录（本地磁盘或同步盘）
"""

from sqlalchemy import Boolean, Column, Integer, String

from jdex.core.database import Base


class StorageDrive(Base):
    __tablename__ = "storage_drives"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    base_path = Column(String(2048), nullable=False)
    jd_root_path = Column(String(2048), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
