"""
结构化日志系统

为运输流程状态机提供JSON格式的结构化日志记录。
核心组件只通过 `log(level, message, context)` 这一窄接口输出诊断信息，
例如参数绑定失败、步骤构造失败以及路由歧义。
"""

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    """日志级别枚举"""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_LEVEL_VALUES = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARNING: 30,
    LogLevel.ERROR: 40,
    LogLevel.CRITICAL: 50,
}


class StructuredLogger:
    """
    结构化日志记录器

    特性:
    - JSON格式输出（每行一条记录）
    - 可配置的日志级别
    - 支持上下文信息（步骤ID、步骤类型、流程名称等）
    - 标准字段: timestamp, level, logger, message, context
    """

    def __init__(self, name: str = "tpm", level: str = "INFO", output_stream=None):
        """
        初始化日志记录器

        Args:
            name: 日志记录器名称
            level: 日志级别 (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            output_stream: 输出流，默认为sys.stderr
        """
        self.name = name
        self.level = self._parse_level(level)
        self.output_stream = output_stream or sys.stderr

    def _parse_level(self, level: str) -> LogLevel:
        """解析日志级别字符串，无效值回退到INFO"""
        try:
            return LogLevel[level.upper()]
        except (KeyError, AttributeError):
            return LogLevel.INFO

    def _should_log(self, level: LogLevel) -> bool:
        return _LEVEL_VALUES[level] >= _LEVEL_VALUES[self.level]

    def _format_log(
        self, level: LogLevel, message: str, context: Optional[Dict[str, Any]] = None, **kwargs
    ) -> str:
        """
        格式化日志为JSON字符串

        Args:
            level: 日志级别
            message: 日志消息
            context: 上下文信息字典
            **kwargs: 额外的字段

        Returns:
            JSON格式的日志字符串
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level.value,
            "logger": self.name,
            "message": message,
        }

        if context is not None:
            log_entry["context"] = context

        for key, value in kwargs.items():
            if key not in log_entry:
                log_entry[key] = value

        # 参数值可能是任意对象
        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def _write_log(self, log_str: str) -> None:
        self.output_stream.write(log_str + "\n")
        self.output_stream.flush()

    def log(
        self, level: str, message: str, context: Optional[Dict[str, Any]] = None, **kwargs
    ) -> None:
        """
        通用日志记录方法

        Args:
            level: 日志级别字符串
            message: 日志消息
            context: 上下文信息
            **kwargs: 额外字段
        """
        log_level = self._parse_level(level)
        if self._should_log(log_level):
            self._write_log(self._format_log(log_level, message, context, **kwargs))

    def debug(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        """记录DEBUG级别日志"""
        self.log(LogLevel.DEBUG.value, message, context, **kwargs)

    def info(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        """记录INFO级别日志"""
        self.log(LogLevel.INFO.value, message, context, **kwargs)

    def warning(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        """记录WARNING级别日志"""
        self.log(LogLevel.WARNING.value, message, context, **kwargs)

    def error(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        """记录ERROR级别日志"""
        self.log(LogLevel.ERROR.value, message, context, **kwargs)

    def critical(self, message: str, context: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        """记录CRITICAL级别日志"""
        self.log(LogLevel.CRITICAL.value, message, context, **kwargs)

    def set_level(self, level: str) -> None:
        """
        设置日志级别

        Args:
            level: 日志级别字符串
        """
        self.level = self._parse_level(level)


# 全局日志记录器实例
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "tpm", level: Optional[str] = None, output_stream=None
) -> StructuredLogger:
    """
    获取日志记录器实例

    Args:
        name: 日志记录器名称（仅在首次创建时生效）
        level: 日志级别（可选）
        output_stream: 输出流（可选）

    Returns:
        StructuredLogger实例
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(
            name=name, level=level or "INFO", output_stream=output_stream
        )
    elif level is not None:
        _global_logger.set_level(level)

    return _global_logger


def configure_logger(
    level: str = "INFO", name: str = "tpm", output_stream=None
) -> StructuredLogger:
    """
    配置全局日志记录器

    Args:
        level: 日志级别
        name: 日志记录器名称
        output_stream: 输出流

    Returns:
        配置后的StructuredLogger实例
    """
    global _global_logger
    _global_logger = StructuredLogger(name=name, level=level, output_stream=output_stream)
    return _global_logger


def reset_logger() -> None:
    """重置全局日志记录器（测试用）"""
    global _global_logger
    _global_logger = None
