"""控制台通知通道 - 把消息写入日志，适合开发环境"""
from loguru import logger

from .base import NotificationChannel, OutboundMessage


class ConsoleChannel(NotificationChannel):
    """把通知写入 loguru 日志而不真正发送"""

    def __init__(self, name: str = "console"):
        super().__init__(name)

    def send(self, message: OutboundMessage) -> None:
        logger.bind(channel=self.name).info(
            f"[{self.name}] -> {message.recipient}: {message.content}"
        )
