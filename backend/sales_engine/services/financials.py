"""
金额计算

纯函数，不做任何 I/O：
- 行净额 = 数量 × 单价 − 折扣
- 行税额 = 行净额 × 税率 / 100
- 行合计 = 行净额 + 行税额
- 单据小计/税额/折扣/总额 = 各行对应数值之和，总额 = 小计 + 税额

金额一律使用 Decimal，按分四舍五入。
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from sales_engine.core.exceptions import ValidationFailed

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")
MAX_DISCOUNT = Decimal("100")


def to_decimal(value: Any, field: str = "金额") -> Decimal:
    """把 int/float/str/Decimal 统一转换为 Decimal"""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        # float 先转字符串，避免二进制误差
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationFailed(f"{field} 不是合法数值: {value!r}", field=field)


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineFigures:
    """单行计算结果"""
    gross: Decimal
    discount: Decimal
    net: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    """单据汇总"""
    subtotal: Decimal = ZERO
    tax_total: Decimal = ZERO
    discount_total: Decimal = ZERO
    grand_total: Decimal = ZERO

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "tax_total": self.tax_total,
            "discount_total": self.discount_total,
            "grand_total": self.grand_total,
        }


def validate_line(quantity: Any, unit_price: Any, discount: Any = 0, tax: Any = 0, position: int = None):
    """校验一行明细，不合法抛 ValidationFailed"""
    label = f"第 {position} 行" if position is not None else "明细"

    if quantity is None or isinstance(quantity, bool) or int(quantity) != quantity:
        raise ValidationFailed(f"{label}数量必须是整数", field="quantity")
    if quantity <= 0:
        raise ValidationFailed(f"{label}数量必须大于 0", field="quantity")

    price = to_decimal(unit_price, "unit_price")
    if price <= 0:
        raise ValidationFailed(f"{label}单价必须大于 0", field="unit_price")

    disc = to_decimal(discount, "discount")
    if disc < 0 or disc > MAX_DISCOUNT:
        raise ValidationFailed(f"{label}折扣必须在 0 到 {MAX_DISCOUNT} 之间", field="discount")
    if disc > Decimal(int(quantity)) * price:
        raise ValidationFailed(f"{label}折扣不能超过行金额", field="discount")

    if to_decimal(tax, "tax") < 0:
        raise ValidationFailed(f"{label}税率不能为负数", field="tax")


def calculate_line(quantity: Any, unit_price: Any, discount: Any = 0, tax: Any = 0) -> LineFigures:
    """计算单行金额（调用前应先 validate_line）"""
    gross = Decimal(int(quantity)) * to_decimal(unit_price, "unit_price")
    disc = to_decimal(discount, "discount")
    net = quantize(gross - disc)
    line_tax = quantize(net * to_decimal(tax, "tax") / HUNDRED)
    return LineFigures(
        gross=quantize(gross),
        discount=quantize(disc),
        net=net,
        tax=line_tax,
        total=net + line_tax,
    )


def calculate_totals(items: Iterable[Any], validate: bool = True) -> DocumentTotals:
    """
    按明细计算单据汇总

    items 可以是 ORM 明细对象、pydantic 对象，或任何带
    quantity/unit_price/discount/tax 属性的对象。
    """
    subtotal = ZERO
    tax_total = ZERO
    discount_total = ZERO
    for position, item in enumerate(items, start=1):
        if validate:
            validate_line(item.quantity, item.unit_price, item.discount, item.tax, position=position)
        figures = calculate_line(item.quantity, item.unit_price, item.discount, item.tax)
        subtotal += figures.net
        tax_total += figures.tax
        discount_total += figures.discount
    return DocumentTotals(
        subtotal=subtotal,
        tax_total=tax_total,
        discount_total=discount_total,
        grand_total=subtotal + tax_total,
    )


def sum_item_totals(items: Iterable[Any]) -> Decimal:
    """各行合计之和（对账用）"""
    return sum((to_decimal(item.total) for item in items), ZERO)

