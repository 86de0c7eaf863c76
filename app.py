#!/usr/bin/env python3
"""沙龙预约引擎 - 后台进程入口

启动后台进程，负责：
1. 连接数据库并确保表结构存在
2. 注册通知通道（默认控制台通道）
3. 周期性重试未送达的预约确认（Outbox 事件）

使用方式：
    python app.py

    # 指定数据库
    python app.py --db sqlite:///data/salon.db

    # 指定重试间隔（秒）
    python app.py --interval 30

环境变量（在 .env 文件中配置，运行 python scripts/setup_env.py 生成）：
    DATABASE_URL                   数据库连接地址
    LOG_LEVEL                      日志级别（默认 INFO）
    LOG_FILE                       日志文件（可选）
    OUTBOX_RETRY_INTERVAL_SECONDS  重试间隔（默认 60）
"""
import argparse
import asyncio
import signal

from loguru import logger

from config.logging_config import setup_logging
from config.settings import settings


def _cleanup(scheduler, service):
    """统一资源清理函数。

    确保调度器停止、数据库连接被正确关闭。
    """
    logger.info("正在清理资源...")

    # 1. 停止调度器
    if scheduler is not None:
        try:
            scheduler.stop()
        except Exception as e:
            logger.warning(f"停止调度器时出错: {e}")

    # 2. 关闭数据库连接（释放连接池）
    if service is not None:
        try:
            service.close()
        except Exception as e:
            logger.warning(f"关闭数据库连接时出错: {e}")

    logger.info("服务已停止")


async def main():
    parser = argparse.ArgumentParser(description="沙龙预约引擎后台进程")
    parser.add_argument("--db", default=None,
                        help="数据库连接 URL（默认读取 DATABASE_URL）")
    parser.add_argument("--interval", type=int,
                        default=settings.outbox_retry_interval_seconds,
                        help="通知重试间隔，单位秒")
    parser.add_argument("--log-level", default=settings.log_level,
                        help="日志级别")
    args = parser.parse_args()

    setup_logging(level=args.log_level, log_file=settings.log_file)

    # 用于 finally 清理的引用
    scheduler = None
    service = None

    try:
        from database import DatabaseManager
        from booking import BookingService
        from booking.scheduler import OutboxScheduler
        from notifications import ConsoleChannel, NotificationManager

        db = DatabaseManager(args.db)
        db.create_tables()
        logger.info(f"数据库已连接: {db.database_url}")

        notifier = NotificationManager(db)
        notifier.register(ConsoleChannel())
        service = BookingService(db, dispatcher=notifier)

        scheduler = OutboxScheduler(
            service.relay,
            interval_seconds=args.interval,
            event_loop=asyncio.get_running_loop(),
        )
        scheduler.run_once()
        scheduler.start()

        print()
        print("=" * 60)
        print("  沙龙预约引擎后台进程已启动!")
        print(f"  数据库: {db.database_url}")
        print(f"  通知通道: {', '.join(notifier.list_channels())}")
        print(f"  重试间隔: {args.interval}s")
        print("=" * 60)
        print("  按 Ctrl+C 停止服务")
        print()

        # 设置信号处理
        loop = asyncio.get_running_loop()
        shutdown_event = asyncio.Event()

        def signal_handler(signum):
            """处理退出信号"""
            logger.info(f"收到信号 {signum}，正在关闭服务...")
            shutdown_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler, sig)

        # 保持运行，直到收到退出信号
        await shutdown_event.wait()

    except asyncio.CancelledError:
        logger.info("任务被取消，正在清理...")
    finally:
        _cleanup(scheduler, service)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        print("\n已停止。")
