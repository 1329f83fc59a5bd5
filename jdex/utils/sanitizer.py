"""
@description 路径与文件名清洗
@responsibility 去除非法字符、限制长度、规避保留设备名，生成目录内唯一的文件名
"""

import os
import re

INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
RESERVED_NAMES = re.compile(r"^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])$", re.IGNORECASE)
MAX_FILENAME_LENGTH = 250
DEFAULT_FILENAME = "unnamed"

# 文件夹名中需要替换的片段：路径分隔符、上级目录、保留字符
_FOLDER_SEPARATORS = re.compile(r"[/\\]")
_FOLDER_TRAVERSAL = re.compile(r"\.\.")
_FOLDER_RESERVED = re.compile(r'[<>:"|?*\x00-\x1f]')


def get_extension(filename: str) -> str:
    """返回带点号的扩展名，例如 ".pdf"；没有扩展名或以点开头的隐藏文件返回空串"""
    _, ext = os.path.splitext(filename)
    return ext


def get_base_name(filename: str) -> str:
    """返回去掉扩展名的文件名"""
    base, _ = os.path.splitext(filename)
    return base


def sanitize_filename(filename: str) -> str:
    """
    清洗文件名

    - 非法字符（<>:"/\\|?* 与控制字符）替换为 _
    - 去掉首尾的点和空格
    - Windows 保留设备名（CON、COM1 等）加 _ 前缀
    - 超过 250 个字符时截断主体部分并保留扩展名
    - 清洗后为空返回 "unnamed"

    Args:
        filename: 原始文件名

    Returns:
        可以安全用于任意平台的文件名
    """
    if not filename:
        return DEFAULT_FILENAME

    sanitized = INVALID_FILENAME_CHARS.sub("_", str(filename))
    sanitized = sanitized.strip(". ")

    if not sanitized:
        return DEFAULT_FILENAME

    if RESERVED_NAMES.match(get_base_name(sanitized)):
        sanitized = f"_{sanitized}"

    if len(sanitized) > MAX_FILENAME_LENGTH:
        ext = get_extension(sanitized)
        if len(ext) >= MAX_FILENAME_LENGTH - 5:
            ext = ""
        base = get_base_name(sanitized) if ext else sanitized
        sanitized = base[: MAX_FILENAME_LENGTH - 5 - len(ext)] + ext

    return sanitized


def sanitize_folder_name(name: str, fallback: str = "Folder") -> str:
    """
    清洗层级目录名（区域 / 类别 / 文件夹）

    路径分隔符、".." 以及保留字符都替换为 _，结果为空时使用 fallback。
    """
    if not name:
        return fallback

    sanitized = _FOLDER_SEPARATORS.sub("_", str(name))
    sanitized = _FOLDER_TRAVERSAL.sub("_", sanitized)
    sanitized = _FOLDER_RESERVED.sub("_", sanitized)
    sanitized = sanitized.strip()

    if not sanitized or sanitized in {".", ".."}:
        return fallback
    return sanitized


def build_numbered_name(filename: str, counter: int) -> str:
    """在扩展名前追加 _<n>，例如 report.pdf -> report_2.pdf"""
    ext = get_extension(filename)
    base = get_base_name(filename)
    return f"{base}_{counter}{ext}"
