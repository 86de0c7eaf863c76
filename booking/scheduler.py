"""定时任务调度器 - Outbox 事件的周期性重试

长驻进程（app.py）中运行，不属于核心引擎：
引擎只负责写入事件并在提交后尝试一次派发，失败的事件由这里定期重试。
"""
import asyncio
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from .events import OutboxRelay


class OutboxScheduler:
    """Outbox 重试调度器

    使用方式：
        ```python
        scheduler = OutboxScheduler(relay, interval_seconds=60)
        scheduler.start()   # 需要在运行中的事件循环里调用
        ...
        scheduler.stop()
        ```
    """

    JOB_ID = "outbox_relay"

    def __init__(self, relay: OutboxRelay, interval_seconds: int = 60,
                 event_loop: Optional[asyncio.AbstractEventLoop] = None):
        """
        Args:
            relay: Outbox 派发器
            interval_seconds: 重试间隔（秒）
            event_loop: 事件循环（可选，默认在 start 时取当前运行的循环）
        """
        self.relay = relay
        self.interval_seconds = interval_seconds
        if event_loop is not None:
            self.scheduler = AsyncIOScheduler(event_loop=event_loop)
        else:
            self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=self.JOB_ID,
            name="Outbox 事件重试",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info(f"Added outbox relay job every {interval_seconds}s")

    def run_once(self) -> dict:
        """执行一次重试，异常只记录日志，不影响下一次调度。"""
        try:
            return self.relay.dispatch_pending()
        except Exception as e:
            logger.exception(f"Outbox relay run failed: {e}")
            return {"sent": 0, "failed": 0}

    def start(self):
        """启动调度器"""
        self.scheduler.start()
        logger.info("Scheduler started")

    def stop(self):
        """停止调度器"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
