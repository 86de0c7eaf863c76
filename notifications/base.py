"""通知通道抽象层

定义 NotificationChannel（通知通道）基类和出站消息数据结构。
每个 Channel 代表一种投递方式（WhatsApp、短信、控制台等）。

通道只负责把已经渲染好的文本投递出去；模板渲染、消息日志、
失败处理都由 NotificationManager 统一完成。
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class NotificationError(Exception):
    """通道投递失败"""


@dataclass
class OutboundMessage:
    """统一出站消息格式

    Attributes:
        tenant_id: 租户ID
        recipient: 接收方标识（电话号码等）
        content: 已渲染的消息文本
        appointment_id: 关联预约（可选）
        extra: 通道特定的附加数据
    """
    tenant_id: int
    recipient: str
    content: str
    appointment_id: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class NotificationChannel(ABC):
    """通知通道抽象基类

    使用方式：
        ```python
        class SmsChannel(NotificationChannel):
            def send(self, message: OutboundMessage) -> None:
                gateway.send(message.recipient, message.content)

        manager.register(SmsChannel("sms"))
        ```
    """

    def __init__(self, name: str):
        """
        Args:
            name: 通道名称标识（如 'whatsapp', 'console'）
        """
        self.name = name

    @abstractmethod
    def send(self, message: OutboundMessage) -> None:
        """投递消息

        Args:
            message: 出站消息

        Raises:
            NotificationError: 投递失败
        """
        pass
