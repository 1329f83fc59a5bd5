"""
@description 扫描结果数据模型
@responsibility 按扫描会话保存扫描到的文件记录
"""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, Integer, String

from jdex.core.database import Base


class ScannedFile(Base):
    __tablename__ = "scanned_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    scan_session_id = Column(String(64), nullable=False, index=True)
    filename = Column(String(512), nullable=False)
    path = Column(String(2048), nullable=False)
    parent_folder = Column(String(2048), nullable=True)
    file_extension = Column(String(50), nullable=True)
    file_type = Column(String(20), nullable=True)
    file_size = Column(BigInteger, default=0)
    suggested_jd_folder = Column(String(5), nullable=True)
    suggestion_confidence = Column(String(10), nullable=True)
    user_decision = Column(String(20), default="pending")
    scanned_at = Column(DateTime, default=datetime.now)
