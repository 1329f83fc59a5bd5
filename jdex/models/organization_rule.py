"""
@description 整理规则数据模型
@responsibility 持久化用户定义的匹配规则（模式字符串原样保存）
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from jdex.core.database import Base


class OrganizationRule(Base):
    __tablename__ = "organization_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    rule_type = Column(String(20), nullable=False)
    pattern = Column(Text, nullable=False)
    target_type = Column(String(20), nullable=False)
    target_id = Column(String(50), nullable=False)
    priority = Column(Integer, default=50, nullable=False)
    exclude_pattern = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    match_count = Column(Integer, default=0, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
