"""日志配置

统一使用 loguru。进程入口调用 setup_logging() 替换默认输出，
库代码只需 ``from loguru import logger``。
"""
import sys
from typing import Optional

from loguru import logger

from config.settings import settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(level: Optional[str] = None,
                  log_file: Optional[str] = None) -> None:
    """配置 loguru 输出。

    Args:
        level: 日志级别，默认使用 settings.log_level。
        log_file: 日志文件路径（可选），按天轮转、保留 14 天。
    """
    level = (level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if log_file:
        logger.add(
            log_file,
            level=level,
            rotation="00:00",
            retention="14 days",
            encoding="utf-8",
        )
