"""Best-effort pricing of the free-text product interest on a pipeline record.

The result is an estimate: names that do not match a catalog product
exactly contribute zero and never block a conversion.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from salesflow.business.catalog.service import catalog_service


ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class PricedLine:
    product_name: str
    product_id: int | None
    unit_price: Decimal
    quantity: Decimal = Decimal("1")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


def parse_product_interest(raw: str | None) -> list[str]:
    if not raw:
        return []
    names: list[str] = []
    for item in raw.split(","):
        name = item.strip()
        if name and name not in names:
            names.append(name)
    return names


def price_product_interest(session: Session, raw: str | None) -> list[PricedLine]:
    names = parse_product_interest(raw)
    products = catalog_service.products_by_name(session, names)
    lines: list[PricedLine] = []
    for name in names:
        product = products.get(name)
        if product is None:
            lines.append(PricedLine(product_name=name, product_id=None, unit_price=ZERO))
        else:
            lines.append(PricedLine(product_name=name, product_id=product.id, unit_price=Decimal(product.price)))
    return lines


def estimate_total(lines: Iterable[PricedLine]) -> Decimal:
    return sum((line.line_total for line in lines), start=ZERO)


def potential_values(session: Session, interests: dict[int, str | None]) -> dict[int, Decimal]:
    """Estimated value per record id, resolved with a single catalog query."""

    parsed = {record_id: parse_product_interest(raw) for record_id, raw in interests.items()}
    prices = catalog_service.prices_by_name(session, (name for names in parsed.values() for name in names))
    return {
        record_id: sum((prices.get(name, ZERO) for name in names), start=ZERO)
        for record_id, names in parsed.items()
    }
