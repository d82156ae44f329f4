from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from sales_engine.core.config import settings


def build_engine(database_uri: str = None):
    """创建异步引擎（sqlite:/// 自动切换为 aiosqlite 驱动）"""
    uri = database_uri or settings.async_database_uri
    if uri.startswith("sqlite:///"):
        uri = uri.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return create_async_engine(
        uri,
        echo=settings.SQL_DEBUG,
        future=True,
    )


def build_session_factory(bind):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# 创建异步引擎
engine = build_engine()

# 创建异步会话
SessionLocal = build_session_factory(engine)
