"""
@description 错误类型与结果封装
@responsibility 定义统一的错误分类、面向用户的错误信息脱敏以及操作结果 Result
"""

import re
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")

GENERIC_ERROR_MESSAGE = "发生了意外错误，请重试。"
MAX_USER_MESSAGE_LENGTH = 200
MIN_INFORMATIVE_LENGTH = 10


class AppError(Exception):
    """应用错误基类"""

    code = "APP_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def user_message(self) -> str:
        return GENERIC_ERROR_MESSAGE

    def to_dict(self) -> dict:
        """日志 / 调试用的结构化表示（可能包含路径，不可直接展示给用户）"""
        return {
            "code": self.code,
            "type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class FileSystemError(AppError):
    """文件系统操作错误，始终携带操作标签"""

    code = "FILE_SYSTEM_ERROR"

    USER_MESSAGES = {
        "read": "无法读取文件，请检查文件是否存在以及是否有访问权限。",
        "write": "无法写入文件，请检查磁盘空间和写入权限。",
        "move": "无法移动文件，目标位置可能已被占用或没有权限。",
        "delete": "无法删除文件，文件可能正在被使用或受保护。",
        "scan": "无法扫描该目录，请检查目录是否存在以及是否有访问权限。",
        "create": "无法创建文件夹，请检查目标位置的写入权限。",
        "rollback": "无法撤销该操作，文件可能已被移动或删除。",
        "build_path": "无法生成目标路径，请检查目标文件夹设置。",
        "unavailable": "当前环境不支持文件系统访问。",
        "unknown": "文件操作失败，请重试。",
    }

    def __init__(
        self, message: str, operation: str = "unknown", details: Optional[dict] = None
    ):
        super().__init__(message, details)
        self.operation = operation if operation in self.USER_MESSAGES else "unknown"

    @property
    def user_message(self) -> str:
        return self.USER_MESSAGES[self.operation]


class DatabaseError(AppError):
    """持久化层错误"""

    code = "DATABASE_ERROR"

    USER_MESSAGES = {
        "query": "读取数据失败，请重试。",
        "insert": "保存数据失败，请重试。",
        "update": "更新数据失败，请重试。",
        "delete": "删除数据失败，请重试。",
        "constraint": "该操作与现有数据冲突，请先处理关联的数据。",
        "connect": "无法连接数据库，请重启应用。",
        "unknown": "数据库操作失败，请重试。",
    }

    def __init__(
        self, message: str, operation: str = "unknown", details: Optional[dict] = None
    ):
        super().__init__(message, details)
        self.operation = operation if operation in self.USER_MESSAGES else "unknown"

    @property
    def user_message(self) -> str:
        return self.USER_MESSAGES[self.operation]


class ValidationError(AppError):
    """输入校验错误，在任何 I/O 之前抛出"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field

    @property
    def user_message(self) -> str:
        # 校验信息由代码生成，不含路径，可以直接展示
        return self.message


class PathSecurityError(AppError):
    """目标路径越出基础目录"""

    code = "PATH_SECURITY_ERROR"

    @property
    def user_message(self) -> str:
        return "目标路径不在允许的存储目录内，操作已被阻止。"


class NotFoundError(AppError):
    """记录不存在"""

    code = "NOT_FOUND"

    def __init__(self, message: str, resource: str = "record"):
        super().__init__(message, {"resource": resource})
        self.resource = resource

    @property
    def user_message(self) -> str:
        return self.message


# 面向用户的信息中需要移除的敏感片段
_REDACTIONS = [
    # Windows 路径
    (re.compile(r"[A-Za-z]:\\[^\s'\"]*"), "[path]"),
    # POSIX 用户目录与临时目录
    (
        re.compile(r"/(?:Users|home|root|tmp|var|private|mnt|media|Volumes)/[^\s'\"]*"),
        "[path]",
    ),
    # 错误码
    (re.compile(r"\[(?:Errno|WinError)\s*-?\d+\]\s*"), ""),
    (re.compile(r"\b(?:ENOENT|EACCES|EPERM|EEXIST|EXDEV|EISDIR|ENOTDIR|EBUSY|ENOSPC)\b:?\s*"), ""),
    (re.compile(r"\berrno\s*[:=]?\s*-?\d+", re.IGNORECASE), ""),
    (re.compile(r"\bsyscall\s*[:=]?\s*\w+", re.IGNORECASE), ""),
    # 数据库内部信息
    (re.compile(r"\(?sqlite3?\.\w+\)?", re.IGNORECASE), ""),
    (re.compile(r"\b(?:UNIQUE|NOT NULL|FOREIGN KEY|CHECK) constraint failed:?[^\n]*", re.IGNORECASE), ""),
    (re.compile(r"\[SQL:[^\]]*\]", re.IGNORECASE), ""),
    # 堆栈信息
    (re.compile(r'\s*File "[^"]+", line \d+[^\n]*'), ""),
    (re.compile(r"Traceback \(most recent call last\):"), ""),
]

_MEANINGFUL_CHARS = re.compile(r"[\w一-鿿]")


def sanitize_error_for_user(error: Any) -> str:
    """
    将任意错误转换为可以安全展示给用户的信息

    Args:
        error: AppError、普通异常或字符串

    Returns:
        不含文件路径、系统错误码与堆栈的信息；无法得到有效信息时返回通用提示
    """
    if error is None:
        return GENERIC_ERROR_MESSAGE

    if isinstance(error, AppError):
        return error.user_message

    text = str(error) if not isinstance(error, str) else error
    # 只保留第一行，丢弃堆栈
    text = text.strip().splitlines()[0] if text.strip() else ""

    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)

    text = re.sub(r"\s{2,}", " ", text).strip(" :;,-")

    if len(_MEANINGFUL_CHARS.findall(text.replace("[path]", ""))) < MIN_INFORMATIVE_LENGTH:
        return GENERIC_ERROR_MESSAGE

    if len(text) > MAX_USER_MESSAGE_LENGTH:
        text = text[: MAX_USER_MESSAGE_LENGTH - 3] + "..."
    return text


@dataclass
class Result(Generic[T]):
    """操作结果：成功时携带 data，失败时携带 error"""

    success: bool
    data: Optional[T] = None
    error: Optional[AppError] = field(default=None)

    @classmethod
    def ok(cls, data: T = None) -> "Result[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: AppError) -> "Result[T]":
        return cls(success=False, error=error)

    @property
    def user_message(self) -> Optional[str]:
        if self.success:
            return None
        return sanitize_error_for_user(self.error)
