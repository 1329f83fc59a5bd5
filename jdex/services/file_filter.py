"""
@description 文件分类与过滤
@responsibility 提供扩展名到文件类型的映射、扫描时的目录 / 文件跳过规则
"""

from typing import Iterable, Optional

from jdex.schemas.files import FileType

EXTENSION_TO_TYPE: dict[str, FileType] = {
    # 文档
    "pdf": FileType.DOCUMENT,
    "doc": FileType.DOCUMENT,
    "docx": FileType.DOCUMENT,
    "txt": FileType.DOCUMENT,
    "rtf": FileType.DOCUMENT,
    "odt": FileType.DOCUMENT,
    "md": FileType.DOCUMENT,
    "pages": FileType.DOCUMENT,
    "tex": FileType.DOCUMENT,
    # 表格
    "xls": FileType.SPREADSHEET,
    "xlsx": FileType.SPREADSHEET,
    "csv": FileType.SPREADSHEET,
    "ods": FileType.SPREADSHEET,
    "numbers": FileType.SPREADSHEET,
    "tsv": FileType.SPREADSHEET,
    # 演示文稿
    "ppt": FileType.PRESENTATION,
    "pptx": FileType.PRESENTATION,
    "odp": FileType.PRESENTATION,
    "key": FileType.PRESENTATION,
    # 图片
    "jpg": FileType.IMAGE,
    "jpeg": FileType.IMAGE,
    "png": FileType.IMAGE,
    "gif": FileType.IMAGE,
    "bmp": FileType.IMAGE,
    "svg": FileType.IMAGE,
    "webp": FileType.IMAGE,
    "ico": FileType.IMAGE,
    "tiff": FileType.IMAGE,
    "tif": FileType.IMAGE,
    "heic": FileType.IMAGE,
    "raw": FileType.IMAGE,
    "cr2": FileType.IMAGE,
    "nef": FileType.IMAGE,
    # 视频
    "mp4": FileType.VIDEO,
    "mov": FileType.VIDEO,
    "avi": FileType.VIDEO,
    "mkv": FileType.VIDEO,
    "wmv": FileType.VIDEO,
    "flv": FileType.VIDEO,
    "webm": FileType.VIDEO,
    "m4v": FileType.VIDEO,
    "mpeg": FileType.VIDEO,
    "mpg": FileType.VIDEO,
    # 音频
    "mp3": FileType.AUDIO,
    "wav": FileType.AUDIO,
    "aac": FileType.AUDIO,
    "flac": FileType.AUDIO,
    "ogg": FileType.AUDIO,
    "m4a": FileType.AUDIO,
    "wma": FileType.AUDIO,
    "aiff": FileType.AUDIO,
    # 压缩包
    "zip": FileType.ARCHIVE,
    "rar": FileType.ARCHIVE,
    "7z": FileType.ARCHIVE,
    "tar": FileType.ARCHIVE,
    "gz": FileType.ARCHIVE,
    "bz2": FileType.ARCHIVE,
    "xz": FileType.ARCHIVE,
    "dmg": FileType.ARCHIVE,
    "iso": FileType.ARCHIVE,
    # 代码
    "js": FileType.CODE,
    "ts": FileType.CODE,
    "jsx": FileType.CODE,
    "tsx": FileType.CODE,
    "py": FileType.CODE,
    "java": FileType.CODE,
    "c": FileType.CODE,
    "cpp": FileType.CODE,
    "h": FileType.CODE,
    "cs": FileType.CODE,
    "go": FileType.CODE,
    "rs": FileType.CODE,
    "rb": FileType.CODE,
    "php": FileType.CODE,
    "swift": FileType.CODE,
    "kt": FileType.CODE,
    "html": FileType.CODE,
    "css": FileType.CODE,
    "scss": FileType.CODE,
    "json": FileType.CODE,
    "xml": FileType.CODE,
    "yaml": FileType.CODE,
    "yml": FileType.CODE,
    "sh": FileType.CODE,
    "sql": FileType.CODE,
    # 数据
    "db": FileType.DATA,
    "sqlite": FileType.DATA,
    "sqlite3": FileType.DATA,
    "parquet": FileType.DATA,
    # 字体
    "ttf": FileType.FONT,
    "otf": FileType.FONT,
    "woff": FileType.FONT,
    "woff2": FileType.FONT,
    # 电子书
    "epub": FileType.EBOOK,
    "mobi": FileType.EBOOK,
    "azw": FileType.EBOOK,
    "azw3": FileType.EBOOK,
    # 设计稿
    "psd": FileType.DESIGN,
    "ai": FileType.DESIGN,
    "sketch": FileType.DESIGN,
    "fig": FileType.DESIGN,
    "xd": FileType.DESIGN,
    "indd": FileType.DESIGN,
}

SKIP_DIRECTORIES = frozenset(
    {
        "node_modules",
        ".git",
        ".svn",
        ".hg",
        "__pycache__",
        ".cache",
        ".npm",
        ".yarn",
        "vendor",
        "dist",
        "build",
        ".next",
        ".nuxt",
        "coverage",
        ".pytest_cache",
        ".mypy_cache",
        "venv",
        ".venv",
        "env",
        ".env",
        ".idea",
        ".vscode",
    }
)

SKIP_FILES = frozenset(
    {
        ".DS_Store",
        "Thumbs.db",
        "desktop.ini",
        ".gitignore",
        ".gitattributes",
        ".npmrc",
        ".yarnrc",
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
    }
)


def get_file_extension(filename: str) -> str:
    """
    提取小写扩展名（不含点号）

    Args:
        filename: 文件名

    Returns:
        扩展名，没有扩展名时返回空串
    """
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def get_file_type(filename: str) -> FileType:
    """根据扩展名判断文件类型，未知扩展名返回 other（大小写不敏感）"""
    return EXTENSION_TO_TYPE.get(get_file_extension(filename), FileType.OTHER)


def should_skip_directory(name: str) -> bool:
    """工具目录和以点开头的目录不扫描"""
    return name in SKIP_DIRECTORIES or name.startswith(".")


def should_skip_file(name: str) -> bool:
    """系统垃圾文件、锁文件和以点开头的文件不扫描"""
    return name in SKIP_FILES or name.startswith(".")


def parse_file_types(value: Optional[str]) -> list[str]:
    """解析逗号分隔的文件类型列表"""
    if not value:
        return []
    return [item.strip().lower() for item in value.split(",") if item.strip()]


def matches_file_types(file_type: FileType, allowed: Iterable[str]) -> bool:
    """allowed 为空表示接受所有类型"""
    allowed = list(allowed)
    if not allowed:
        return True
    return file_type.value in allowed
