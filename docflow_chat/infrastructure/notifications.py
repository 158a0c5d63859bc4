"""面向用户的通知出口（toast）。

UI 层实现 Notifier 协议即可接入；无界面环境下默认写日志。
"""

import logging
from dataclasses import dataclass, field
from typing import List, Protocol, Tuple

from docflow_chat.infrastructure.logging.logger import logger


class Notifier(Protocol):
    def error(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...

    def info(self, message: str) -> None:
        ...


class LoggingNotifier:
    """把通知写进 docflow_chat 日志。"""

    def error(self, message: str) -> None:
        logger.log(logging.ERROR, message, extra={"extra": {"channel": "toast"}})

    def warning(self, message: str) -> None:
        logger.log(logging.WARNING, message, extra={"extra": {"channel": "toast"}})

    def info(self, message: str) -> None:
        logger.log(logging.INFO, message, extra={"extra": {"channel": "toast"}})


@dataclass
class RecordingNotifier:
    """记录所有通知，供命令行调用方或测试检查。"""

    records: List[Tuple[str, str]] = field(default_factory=list)

    def error(self, message: str) -> None:
        self.records.append(("error", message))

    def warning(self, message: str) -> None:
        self.records.append(("warning", message))

    def info(self, message: str) -> None:
        self.records.append(("info", message))

    def of_level(self, level: str) -> List[str]:
        return [msg for lvl, msg in self.records if lvl == level]
