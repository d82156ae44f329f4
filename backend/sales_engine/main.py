import asyncio
import logging

from sales_engine.core.config import settings
from sales_engine.core.logging_config import setup_logging
from sales_engine.db import session as db_session
from sales_engine.db.init_db import ensure_tables_exist
from sales_engine.services.scheduler import init_scheduler, shutdown_scheduler

logger = logging.getLogger(__name__)


async def run_worker(stop_event: asyncio.Event = None):
    """后台进程：建表、启动状态巡检，直到 stop_event 被触发或进程被中断"""
    logger.info(f"🚀 {settings.PROJECT_NAME} 启动中...")

    try:
        await ensure_tables_exist()
    except Exception as e:
        logger.warning(f"数据库表初始化警告: {e}")

    init_scheduler()
    stop_event = stop_event or asyncio.Event()
    try:
        await stop_event.wait()
    finally:
        logger.info("🛑 应用关闭中...")
        shutdown_scheduler()
        await db_session.engine.dispose()


def main():
    # 初始化日志系统
    setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        logger.info("👋 已退出")


if __name__ == "__main__":
    main()
