from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from salesflow.business.catalog.models import CatalogProduct
from salesflow.business.catalog.schemas import CatalogProductCreate, CatalogProductRead
from salesflow.platform.security.context import Principal
from salesflow.platform.security.errors import Conflict, Forbidden, Unauthorized
from salesflow.platform.security.roles import classify


@dataclass(slots=True)
class CatalogService:
    def create_product(self, session: Session, principal: Principal | None, dto: CatalogProductCreate) -> CatalogProductRead:
        if principal is None:
            raise Unauthorized()
        if not classify(principal).is_superuser:
            raise Forbidden("only superuser may manage the product catalog")

        product = CatalogProduct(**dto.model_dump(mode="python"))
        session.add(product)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise Conflict("catalog product already exists")
        session.refresh(product)
        return CatalogProductRead.model_validate(product)

    def list_products(
        self,
        session: Session,
        principal: Principal | None,
        *,
        active_only: bool = True,
    ) -> list[CatalogProductRead]:
        if principal is None:
            raise Unauthorized()
        stmt = select(CatalogProduct)
        if active_only:
            stmt = stmt.where(CatalogProduct.is_active.is_(True))
        rows = session.scalars(stmt.order_by(CatalogProduct.name.asc())).all()
        return [CatalogProductRead.model_validate(row) for row in rows]

    def prices_by_name(self, session: Session, names: Iterable[str]) -> dict[str, Decimal]:
        """Catalog price per exact product name; names not in the catalog are absent."""

        wanted = sorted(set(names))
        if not wanted:
            return {}
        rows = session.execute(
            select(CatalogProduct.name, CatalogProduct.price).where(
                CatalogProduct.name.in_(wanted),
                CatalogProduct.is_active.is_(True),
            )
        ).all()
        return {name: Decimal(price) for name, price in rows}

    def products_by_name(self, session: Session, names: Iterable[str]) -> dict[str, CatalogProduct]:
        wanted = sorted(set(names))
        if not wanted:
            return {}
        rows = session.scalars(
            select(CatalogProduct).where(CatalogProduct.name.in_(wanted), CatalogProduct.is_active.is_(True))
        ).all()
        return {row.name: row for row in rows}


catalog_service = CatalogService()
