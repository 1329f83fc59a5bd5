"""
@description Johnny Decimal 层级数据模型
@responsibility 定义区域（Area）、类别（Category）、文件夹（Folder）三级结构
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from jdex.core.database import Base


class Area(Base):
    """区域：覆盖一段两位数的类别编号，例如 10-19"""

    __tablename__ = "areas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    range_start = Column(Integer, nullable=False)
    range_end = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now)


class Category(Base):
    """类别：两位数编号，必须落在所属区域的范围内"""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(Integer, unique=True, nullable=False)
    area_id = Column(Integer, ForeignKey("areas.id", ondelete="RESTRICT"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now)


class Folder(Base):
    """文件夹：CC.NN 编号，前两位等于所属类别编号"""

    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    folder_number = Column(String(5), unique=True, nullable=False, index=True)
    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False
    )
    sequence = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    keywords = Column(Text, nullable=True)
    storage_path = Column(String(1024), nullable=True)
    created_at = Column(DateTime, default=datetime.now)
