import logging

import pytest

from sales_engine.core.logging_config import ColoredFormatter, LOG_FORMAT, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_writes_daily_and_error_files(tmp_path, restore_root_logger):
    assert setup_logging("warning", str(tmp_path)) == tmp_path
    assert restore_root_logger.level == logging.WARNING

    logger = logging.getLogger("sales_engine.test")
    logger.warning("发票 INV-2025-00001 逾期")
    logger.error("收款核销失败")
    for handler in restore_root_logger.handlers:
        handler.flush()

    app_log = next(tmp_path.glob("app_*.log")).read_text(encoding="utf-8")
    error_log = next(tmp_path.glob("error_*.log")).read_text(encoding="utf-8")
    assert "INV-2025-00001" in app_log
    assert "收款核销失败" in error_log
    assert "INV-2025-00001" not in error_log
    assert "\033[" not in app_log


def test_colored_formatter_leaves_record_untouched():
    record = logging.LogRecord("sales_engine", logging.INFO, __file__, 1, "ok", None, None)
    text = ColoredFormatter(LOG_FORMAT).format(record)
    assert "\033[32mINFO" in text
    assert record.levelname == "INFO"
