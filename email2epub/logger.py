"""
日志模块 (Logging)
==================

email2epub 的所有模块都通过 ``get_logger(__name__)`` 取得日志器。
包根日志器 ``email2epub`` 在第一次调用时挂上一个输出到 stdout 的处理器，
``--verbose`` 时通过 ``set_level(logging.DEBUG)`` 打开调试输出。

用法:
    from email2epub.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Adding %s", eml_path)
    logger.warning("Download %s fail: %s", url, error)
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGER = "email2epub"
PACKAGE_LEVEL = logging.INFO


def _console_handler() -> logging.Handler:
    """stdout 处理器；不设级别，由日志器级别统一控制。"""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    return handler


def _package_logger() -> logging.Logger:
    """返回包根日志器，首次调用时完成配置。"""
    package = logging.getLogger(PACKAGE_LOGGER)
    if not getattr(package, "_email2epub_configured", False):
        package.addHandler(_console_handler())
        package.setLevel(PACKAGE_LEVEL)
        # keep records out of the host application's root handlers
        package.propagate = False
        package._email2epub_configured = True
    return package


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    获取名为 *name* 的日志器。

    参数:
        name: 一般传入调用模块的 ``__name__``
        level: 仅对该日志器生效的级别（可选）
    """
    _package_logger()
    named = logging.getLogger(name)
    if level is not None:
        named.setLevel(level)
    return named


def set_level(level: int, logger_name: Optional[str] = None) -> None:
    """
    调整日志级别；不指定 *logger_name* 时作用于整个包。

    示例:
        set_level(logging.DEBUG)                        # --verbose
        set_level(logging.DEBUG, "email2epub.fetcher")  # 只看下载
    """
    target = logging.getLogger(logger_name) if logger_name else _package_logger()
    target.setLevel(level)
