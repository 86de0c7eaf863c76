"""通知模块 - 预约确认等消息的投递"""
from .base import NotificationChannel, NotificationError, OutboundMessage
from .console import ConsoleChannel
from .manager import NotificationManager

__all__ = [
    "NotificationChannel",
    "NotificationError",
    "OutboundMessage",
    "ConsoleChannel",
    "NotificationManager",
]
