"""全局配置管理

所有用户可配置项均通过 .env 文件设置，运行时自动加载到此处。

使用方式：
    1. 运行 python scripts/setup_env.py 生成 .env 文件
    2. 或直接设置环境变量（如 DATABASE_URL、LOG_LEVEL）
"""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用配置 - 所有字段均可通过 .env 或环境变量覆盖"""

    # ========== 数据库 ==========
    database_url: str = "sqlite:///data/salon.db"

    # ========== 日志 ==========
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # ========== 预约与订单 ==========
    # 创建预约时是否在同一事务内同步生成订单
    ensure_order_on_booking: bool = False

    # ========== 通知 ==========
    notifications_enabled: bool = True
    confirmation_template: str = (
        "Olá {client_name}! Seu horário em {date} às {time} "
        "com {collaborator} está confirmado. Serviços: {services}."
    )

    # ========== Outbox 重试 ==========
    outbox_max_attempts: int = 5
    outbox_retry_interval_seconds: int = 60
    outbox_batch_size: int = 50

    # ========== 排队（到店顺序） ==========
    queue_slot_minutes: int = 30
    queue_rounding_minutes: int = 15

    # ========== 提成 ==========
    default_commission_history_limit: int = 20

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# 全局配置实例
settings = Settings()
