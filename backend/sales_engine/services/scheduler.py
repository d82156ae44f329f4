"""
定时任务调度器服务
使用 APScheduler 定期执行状态巡检：过期报价单、逾期发票
"""

import logging
from typing import Dict, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sales_engine.core.config import settings
from sales_engine.core.context import OperationContext
from sales_engine.db import session as db_session
from sales_engine.repositories.invoice import InvoiceRepository
from sales_engine.repositories.quotation import QuotationRepository

logger = logging.getLogger(__name__)

# 全局调度器实例
scheduler: Optional[AsyncIOScheduler] = None


async def run_status_sweep(session_factory=None, ctx: Optional[OperationContext] = None) -> Dict[str, int]:
    """
    执行一次状态巡检（也可手动触发）

    Returns:
        各类单据处理数量 {"quotations_expired": n, "invoices_overdue": m}
    """
    factory = session_factory or db_session.SessionLocal
    async with factory() as db:
        expired = await QuotationRepository(db).expire_overdue_quotations(ctx)
        overdue = await InvoiceRepository(db).mark_overdue_invoices(ctx)

    result = {"quotations_expired": expired, "invoices_overdue": overdue}
    logger.info(f"🔍 状态巡检完成: 过期报价单 {expired} 张, 逾期发票 {overdue} 张")
    return result


async def scheduled_status_sweep():
    """调度器调用入口，失败只记日志，等下一轮重试"""
    try:
        await run_status_sweep()
    except Exception as e:
        logger.error(f"❌ 状态巡检失败: {str(e)}")


def init_scheduler():
    """初始化并启动调度器（需要在运行中的事件循环里调用）"""
    global scheduler

    if not settings.STATUS_SWEEP_ENABLED:
        logger.info("🔍 状态巡检已禁用")
        return

    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        scheduled_status_sweep,
        trigger=IntervalTrigger(minutes=settings.STATUS_SWEEP_INTERVAL_MINUTES),
        id="status_sweep",
        name="单据状态巡检",
        replace_existing=True
    )

    scheduler.start()
    logger.info(f"⏰ 定时任务调度器已启动 - 状态巡检间隔: {settings.STATUS_SWEEP_INTERVAL_MINUTES} 分钟")


def shutdown_scheduler():
    """关闭调度器"""
    global scheduler
    if scheduler:
        scheduler.shutdown()
        scheduler = None
        logger.info("⏰ 定时任务调度器已关闭")


def get_scheduler_status() -> dict:
    """获取调度器状态"""
    if not scheduler:
        return {
            "enabled": settings.STATUS_SWEEP_ENABLED,
            "running": False,
            "jobs": []
        }

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None
        })

    return {
        "enabled": settings.STATUS_SWEEP_ENABLED,
        "running": scheduler.running,
        "jobs": jobs
    }
