"""
@description 通用工具函数
@responsibility 提供项目级别的辅助功能
"""

import secrets
import uuid

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_file_size(size_bytes: int) -> str:
    """
    将字节数格式化为可读字符串

    Examples:
        >>> format_file_size(0)
        '0 Bytes'
        >>> format_file_size(1536)
        '1.5 KB'
    """
    if not size_bytes or size_bytes <= 0:
        return "0 Bytes"

    size = float(size_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(_SIZE_UNITS) - 1:
        size /= 1024
        unit_index += 1

    text = f"{size:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[unit_index]}"


def new_session_id() -> str:
    """生成扫描会话 ID（基于系统安全随机源，不会复用）"""
    return f"scan-{uuid.uuid4().hex}"


def new_undo_id() -> str:
    """生成批量重命名撤销 ID"""
    return f"rename-{secrets.token_hex(12)}"
