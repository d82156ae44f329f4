import asyncio
import logging

from sales_engine.db import session as db_session
from sales_engine.db.base import Base

# 导入所有模型，确保表能被创建
import sales_engine.models  # noqa: F401

logger = logging.getLogger(__name__)


async def init_db(engine=None) -> None:
    """
    初始化数据库 - 创建所有表
    """
    async with (engine or db_session.engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ensure_tables_exist(engine=None) -> None:
    """
    确保数据库表存在（启动时调用）
    """
    await init_db(engine)
    logger.info(f"📊 数据表检查完成: {len(Base.metadata.tables)} 张")


if __name__ == "__main__":
    asyncio.run(init_db())
