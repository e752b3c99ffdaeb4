"""日志模块

提供日志配置与获取：
- get_logger: 按模块名获取日志器（推荐）
- setup_logger / setup_root_logger: 配置处理器与级别
- MicrosecondFormatter: 微秒精度格式化器

使用示例:
    from ycascade.log import get_logger, setup_root_logger

    setup_root_logger(level="DEBUG")
    logger = get_logger()
"""

from .logger import (
    setup_logger,
    setup_root_logger,
    create_formatter,
    MicrosecondFormatter,
    DEFAULT_LOG_FORMAT,
    orm_logger,
    cascade_logger,
    logger,
    get_logger,
)

__all__ = [
    "setup_logger",
    "setup_root_logger",
    "create_formatter",
    "MicrosecondFormatter",
    "DEFAULT_LOG_FORMAT",
    "orm_logger",
    "cascade_logger",
    "logger",
    "get_logger",
]
