"""通知管理器 - 预约确认的渲染、投递与消息日志"""
from typing import Dict, List, Optional

from loguru import logger

from booking.adapters import DispatchResult, NotificationDispatcher
from config.settings import settings
from database.manager import DatabaseManager
from database.models import Appointment
from .base import NotificationChannel, OutboundMessage


class NotificationManager(NotificationDispatcher):
    """通知管理器

    统一管理多个通知通道，实现引擎需要的 NotificationDispatcher 接口：
    读取预约信息、按模板渲染确认消息、写入消息日志（pending → sent / failed），
    并通过默认通道投递。

    使用方式：
        ```python
        manager = NotificationManager(db)
        manager.register(ConsoleChannel())
        result = manager.notify(tenant_id=1, appointment_id=42)
        ```
    """

    def __init__(self, db: DatabaseManager, template: Optional[str] = None,
                 default_channel: Optional[str] = None):
        """
        Args:
            db: 数据库管理器
            template: 确认消息模板，可用占位符：client_name、date、time、
                collaborator、services（默认取 settings.confirmation_template）
            default_channel: 默认通道名称（默认取第一个注册的通道）
        """
        self.db = db
        self.template = template or settings.confirmation_template
        self.channels: Dict[str, NotificationChannel] = {}
        self.default_channel = default_channel

    def register(self, channel: NotificationChannel):
        """注册通道

        Args:
            channel: 通道实例
        """
        name = channel.name
        if name in self.channels:
            logger.warning(f"通道 {name} 已注册，将被替换")
        self.channels[name] = channel
        logger.info(f"通道已注册: {name}")

    def unregister(self, name: str):
        """注销通道

        Args:
            name: 通道名称
        """
        if name in self.channels:
            del self.channels[name]
            logger.info(f"通道已注销: {name}")

    def get_channel(self, name: Optional[str] = None) -> Optional[NotificationChannel]:
        """获取通道，name 为空时返回默认通道"""
        if name:
            return self.channels.get(name)
        if self.default_channel:
            return self.channels.get(self.default_channel)
        return next(iter(self.channels.values()), None)

    def list_channels(self) -> List[str]:
        """列出所有已注册的通道名称"""
        return list(self.channels.keys())

    def render(self, appointment: Appointment, client_name: str,
               collaborator_name: str, service_names: List[str]) -> str:
        """按模板渲染预约确认消息"""
        return self.template.format(
            client_name=client_name,
            date=appointment.start.strftime("%d/%m/%Y"),
            time=appointment.start.strftime("%H:%M"),
            collaborator=collaborator_name,
            services=", ".join(service_names),
        )

    def notify(self, tenant_id: int, appointment_id: int) -> DispatchResult:
        """发送预约确认

        投递失败只体现在返回值和消息日志上，不会抛出异常。

        Args:
            tenant_id: 租户ID
            appointment_id: 预约ID

        Returns:
            派发结果
        """
        with self.db.get_session() as session:
            appointment = self.db.appointments.get(tenant_id, appointment_id, session=session)
            if appointment is None:
                return DispatchResult(success=False, error=f"Appointment {appointment_id} not found")
            client = appointment.client
            collaborator = appointment.collaborator
            services = self.db.services.get_by_ids(tenant_id, appointment.service_ids,
                                                   session=session)
            content = self.render(appointment, client.name, collaborator.name,
                                  [s.name for s in services])
            recipient = client.phone or client.name
            client_id = client.id

        channel = self.get_channel()
        channel_name = channel.name if channel else "none"
        log = self.db.message_logs.add_pending(
            tenant_id, channel_name, content,
            appointment_id=appointment_id, client_id=client_id,
        )

        if channel is None:
            error = "No notification channel registered"
            self.db.message_logs.mark_failed(log.id, error)
            return DispatchResult(success=False, error=error)

        try:
            channel.send(OutboundMessage(
                tenant_id=tenant_id, recipient=recipient, content=content,
                appointment_id=appointment_id,
            ))
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            self.db.message_logs.mark_failed(log.id, error)
            logger.warning(f"Confirmation for appointment {appointment_id} failed on "
                           f"{channel_name}: {error}")
            return DispatchResult(success=False, error=error)

        self.db.message_logs.mark_sent(log.id)
        logger.info(f"Confirmation for appointment {appointment_id} sent via {channel_name}")
        return DispatchResult(success=True)
