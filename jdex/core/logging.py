"""
@description 日志初始化
@responsibility 根据配置设置 loguru 的终端和文件输出
"""

import sys

from loguru import logger

from jdex.core.config import LoggingConfig


def setup_logging(config: LoggingConfig) -> None:
    """
    重新配置 loguru 输出

    Args:
        config: 日志配置（级别、可选的日志文件及轮转策略）
    """
    logger.remove()
    logger.add(sys.stderr, level=config.level)

    if config.file:
        logger.add(
            config.file,
            level=config.level,
            rotation=config.rotation,
            retention=config.retention,
            encoding="utf-8",
            enqueue=True,
        )

    logger.debug(f"日志已初始化: level={config.level}, file={config.file}")
