"""
@description 整理记录数据模型
@responsibility 记录每一次成功的文件移动，用于审计和撤销（只改状态，不删除）
"""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String

from jdex.core.database import Base


class OrganizedFile(Base):
    __tablename__ = "organized_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String(512), nullable=False)
    original_path = Column(String(2048), nullable=False)
    current_path = Column(String(2048), nullable=False)
    jd_folder_number = Column(String(5), nullable=False, index=True)
    file_extension = Column(String(50), nullable=True)
    file_type = Column(String(20), nullable=True)
    file_size = Column(BigInteger, default=0)
    matched_rule_id = Column(
        Integer, ForeignKey("organization_rules.id", ondelete="SET NULL"), nullable=True
    )
    storage_drive_id = Column(
        Integer, ForeignKey("storage_drives.id", ondelete="SET NULL"), nullable=True
    )
    status = Column(String(20), default="moved", nullable=False, index=True)
    organized_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
