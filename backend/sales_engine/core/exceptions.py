"""
引擎异常定义

所有异常都继承自 SalesEngineError，调用方（HTTP 层等）按类型映射为响应。
"""

from typing import Any, Dict, Iterable, Optional


class SalesEngineError(Exception):
    """销售单据引擎异常基类"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotFound(SalesEngineError):
    """单据、付款或明细不存在"""

    def __init__(self, entity: str, identifier: Any):
        super().__init__(f"{entity} {identifier} 不存在")
        self.entity = entity
        self.identifier = identifier


class InvalidStatusTransition(SalesEngineError):
    """非法的状态变更，或从错误状态发起转换"""

    def __init__(
        self,
        document_type: str,
        current: str,
        requested: str,
        message: Optional[str] = None,
        allowed: Optional[Iterable[str]] = None,
    ):
        self.document_type = document_type
        self.current = current
        self.requested = requested
        self.allowed = sorted(allowed) if allowed is not None else []
        if message is None:
            message = f"{document_type} 状态不能从 {current} 变更为 {requested}"
            if self.allowed:
                message += f"（允许: {', '.join(self.allowed)}）"
        super().__init__(message)


class InvalidPagination(SalesEngineError):
    """分页参数非法"""

    def __init__(self, page: Any, page_size: Any, max_page_size: Optional[int] = None):
        message = f"分页参数非法: page={page}, page_size={page_size}"
        if max_page_size is not None:
            message += f"（page 必须 >= 1，page_size 必须在 1 到 {max_page_size} 之间）"
        super().__init__(message)
        self.page = page
        self.page_size = page_size


class RelatedRecordsExist(SalesEngineError):
    """存在关联单据，禁止删除"""

    def __init__(self, entity: str, identifier: Any, related: Dict[str, int]):
        self.entity = entity
        self.identifier = identifier
        self.related = {name: count for name, count in related.items() if count}
        details = "、".join(f"{count} 个{name}" for name, count in self.related.items())
        super().__init__(f"{entity} {identifier} 存在 {details}，无法删除")

    @property
    def total(self) -> int:
        return sum(self.related.values())


class ContextCancelled(SalesEngineError):
    """调用方已取消操作"""

    def __init__(self, message: str = "操作已被调用方取消"):
        super().__init__(message)


class ContextTimeout(SalesEngineError):
    """操作超过调用方设置的截止时间"""

    def __init__(self, message: str = "操作超时"):
        super().__init__(message)


class ValidationFailed(SalesEngineError):
    """数据校验失败"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class DocumentNumberConflict(SalesEngineError):
    """单号冲突（可重试）"""

    retryable = True

    def __init__(self, document_type: str, document_no: Optional[str] = None, attempts: int = 0):
        self.document_type = document_type
        self.document_no = document_no
        self.attempts = attempts
        if document_no:
            message = f"{document_type} 单号 {document_no} 已存在"
        else:
            message = f"{document_type} 单号生成冲突，已重试 {attempts} 次"
        super().__init__(message)
