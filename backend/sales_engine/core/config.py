from typing import Dict
import logging

from pydantic import Field, validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

class Settings(BaseSettings):
    PROJECT_NAME: str = "销售单据生命周期引擎"

    # 数据库配置
    SQLITE_DATABASE_URI: str = "sqlite:///./sales_engine.db"
    SQL_DEBUG: bool = False

    # 日志配置
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # 分页配置
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # 单号配置
    # 格式：{前缀}-{年份}-{序号}，如 PO-2025-00042
    DOCUMENT_NO_PREFIXES: Dict[str, str] = {
        "quotation": "QT",
        "sales_order": "SO",
        "purchase_order": "PO",
        "delivery": "DEL",
        "invoice": "INV",
    }
    DOCUMENT_NO_SEQUENCE_WIDTH: int = Field(default=5, ge=1, description="序号补零位数")
    DOCUMENT_NO_MAX_RETRIES: int = Field(default=5, ge=1, description="单号冲突最大重试次数")

    # 单据转换默认值
    SALES_ORDER_LEAD_DAYS: int = 15  # 报价单转销售订单后的预计交货天数
    PURCHASE_ORDER_LEAD_DAYS: int = 15  # 销售订单生成采购单后的预计到货天数
    INVOICE_DUE_DAYS: int = 30  # 销售订单开票后的默认账期

    # 状态巡检（过期报价单、逾期发票）
    STATUS_SWEEP_ENABLED: bool = True
    STATUS_SWEEP_INTERVAL_MINUTES: int = 60

    @validator("LOG_LEVEL", pre=True)
    def normalize_log_level(cls, v: str) -> str:
        if isinstance(v, str):
            return v.strip().upper()
        raise ValueError(v)

    @property
    def async_database_uri(self) -> str:
        """异步驱动连接串"""
        uri = self.SQLITE_DATABASE_URI
        if uri.startswith("sqlite:///"):
            return uri.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        return uri

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
logger.info(f"加载配置: DATABASE={settings.SQLITE_DATABASE_URI}, MAX_PAGE_SIZE={settings.MAX_PAGE_SIZE}")
