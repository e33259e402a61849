"""
日志系统配置
"""
import logging
import sys
from datetime import datetime
from typing import Union

from .config import LOG_LEVEL


class LogFormatter(logging.Formatter):
    """自定义日志格式化器"""

    COLORS = {
        'DEBUG': '\033[36m',      # 青色
        'INFO': '\033[32m',       # 绿色
        'WARNING': '\033[33m',    # 黄色
        'ERROR': '\033[31m',      # 红色
        'CRITICAL': '\033[35m',   # 紫色
        'RESET': '\033[0m',       # 重置
    }

    def format(self, record):
        """格式化日志记录"""
        log_color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset_color = self.COLORS['RESET']

        # 先合并参数，再添加级别、时间戳和记录器名称
        message = super().format(record)
        return (
            f"{log_color}[{record.levelname}]{reset_color} "
            f"[{datetime.now().strftime('%Y-%m-%d %H:%M:%S')}] "
            f"[{record.name}] "
            f"{message}"
        )


def setup_logger(name: str, level: Union[int, str] = logging.INFO) -> logging.Logger:
    """
    设置日志记录器

    Args:
        name: 日志记录器名称
        level: 日志级别（数值或 "INFO" 等名称）

    Returns:
        配置好的日志记录器
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # 移除已有的处理器
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(LogFormatter(fmt='%(message)s', datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """获取日志记录器"""
    return logging.getLogger(name)


# 创建包级日志记录器，子模块通过 get_logger(__name__) 继承
logger = setup_logger('media_relay', LOG_LEVEL.upper())
