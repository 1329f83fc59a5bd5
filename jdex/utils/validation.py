"""
@description 输入校验
@responsibility 校验文件路径、Johnny Decimal 编号和用户输入文本，失败时抛出 ValidationError
"""

import os
import re
from typing import Iterable, Optional

from jdex.core.errors import ValidationError

FOLDER_NUMBER_PATTERN = re.compile(r"^\d{2}\.\d{2}$")
MAX_PATH_LENGTH = 4096

# 系统目录始终拒绝访问
SYSTEM_PATH_PREFIXES = (
    "/etc",
    "/usr",
    "/bin",
    "/sbin",
    "/boot",
    "/proc",
    "/sys",
    "/dev",
)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_ANGLE_BRACKETS = re.compile(r"[<>]")


def is_path_within_base(target_path: str, base_path: str) -> bool:
    """判断 target_path 是否位于 base_path 之内（两者相同也算）"""
    target = os.path.normcase(os.path.abspath(target_path))
    base = os.path.normcase(os.path.abspath(base_path))
    if target == base:
        return True
    return target.startswith(base.rstrip(os.sep) + os.sep)


def validate_file_path(
    file_path: str,
    allowed_roots: Optional[Iterable[str]] = None,
    field: str = "path",
) -> str:
    """
    校验并规范化文件路径

    Args:
        file_path: 待校验路径，支持 ~ 开头
        allowed_roots: 允许的根目录列表，为空表示不限制
        field: 出错时报告的字段名

    Returns:
        规范化后的绝对路径

    Raises:
        ValidationError: 路径为空、过长、包含空字节或 ".." 片段、指向系统目录、
            或不在允许的根目录内
    """
    if not file_path or not isinstance(file_path, str) or not file_path.strip():
        raise ValidationError("路径不能为空", field)

    if "\x00" in file_path:
        raise ValidationError("路径包含非法字符", field)

    if len(file_path) > MAX_PATH_LENGTH:
        raise ValidationError("路径过长", field)

    parts = re.split(r"[/\\]", file_path)
    if ".." in parts:
        raise ValidationError("路径不能包含上级目录引用", field)

    resolved = os.path.abspath(os.path.expanduser(file_path))

    for prefix in SYSTEM_PATH_PREFIXES:
        if resolved == prefix or resolved.startswith(prefix + "/"):
            raise ValidationError("不允许访问系统目录", field)

    roots = [root for root in (allowed_roots or []) if root]
    if roots and not any(
        is_path_within_base(resolved, os.path.abspath(os.path.expanduser(root)))
        for root in roots
    ):
        raise ValidationError("路径不在允许的目录范围内", field)

    return resolved


def validate_folder_number(folder_number: str) -> str:
    """校验文件夹编号格式 CC.NN"""
    if not isinstance(folder_number, str) or not FOLDER_NUMBER_PATTERN.match(
        folder_number.strip()
    ):
        raise ValidationError("文件夹编号格式应为 XX.XX", "folder_number")
    return folder_number.strip()


def sanitize_text(text: Optional[str], max_length: int = 255) -> str:
    """清理用户输入的短文本：去掉控制字符和尖括号，压缩空白"""
    if not text:
        return ""
    cleaned = _CONTROL_CHARS.sub("", str(text))
    cleaned = _ANGLE_BRACKETS.sub("", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:max_length]
