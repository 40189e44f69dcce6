from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Select, select
from sqlalchemy.orm import Session, selectinload

from salesflow.core import events
from salesflow.business.revenue.models import Quotation, SalesOrder
from salesflow.business.revenue.repository import QuotationRepository, SalesOrderRepository
from salesflow.business.revenue.schemas import (
    QuotationLineRead,
    QuotationRead,
    SalesOrderLineRead,
    SalesOrderRead,
)
from salesflow.metrics import observe_transition
from salesflow.pipeline.statuses import (
    PaymentStatus,
    QuotationStatus,
    SalesOrderStatus,
    StatusKind,
    canonicalize,
    format_status_display,
    is_valid_transition,
)
from salesflow.platform.security.context import Principal
from salesflow.platform.security.errors import (
    Forbidden,
    InvalidTransition,
    NotFoundError,
    Unauthorized,
    UnknownStage,
    ValidationError,
)
from salesflow.platform.security.rls import is_owner_or_assignee
from salesflow.platform.security.roles import Domain, Role, RoleSet, classify
from salesflow.services.audit import write_user_log
from salesflow.services.pagination import clamp_limit


logger = logging.getLogger("salesflow.revenue")

MANUAL_SALES_ORDER_MESSAGE = (
    "Sales orders cannot be created manually. Convert an approved quotation to create a sales order."
)

# Roles allowed to move a sales order into each status, besides the
# owner/assignee rule for OPEN.
SALES_ORDER_STATUS_ROLES: dict[SalesOrderStatus, tuple[Role, ...]] = {
    SalesOrderStatus.OPEN: (Role.MANAGER_SALES,),
    SalesOrderStatus.PROCESSING: (Role.FINANCE, Role.MANAGER_FINANCE, Role.MANAGER_SALES),
    SalesOrderStatus.COMPLETED: (Role.WAREHOUSE, Role.MANAGER_WAREHOUSE, Role.DELIVERY, Role.MANAGER_SALES),
    SalesOrderStatus.CANCELLED: (Role.MANAGER_SALES,),
}
PAYMENT_ROLES: tuple[Role, ...] = (Role.FINANCE, Role.MANAGER_FINANCE, Role.MANAGER_SALES)


def _parse_stage(raw: object, kind: StatusKind) -> QuotationStatus | SalesOrderStatus | PaymentStatus:
    try:
        return canonicalize(raw, kind)  # type: ignore[return-value]
    except UnknownStage:
        raise ValidationError(f"unknown {kind.value.replace('_', ' ')} status {raw!r}") from None


@dataclass(slots=True)
class RevenueService:
    quotation_repository: QuotationRepository = QuotationRepository()
    sales_order_repository: SalesOrderRepository = SalesOrderRepository()

    def list_quotations(
        self,
        session: Session,
        principal: Principal | None,
        *,
        status: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[QuotationRead]:
        scope = self.quotation_repository.scope_for(principal)
        stmt: Select[tuple[Quotation]] = select(Quotation).options(selectinload(Quotation.lines))
        if status is not None:
            stage = _parse_stage(status, StatusKind.QUOTATION)
            stmt = stmt.where(self.quotation_repository.status_clause(Quotation.status, [stage], StatusKind.QUOTATION))
        stmt = self.quotation_repository.apply_scope_query(stmt, scope)
        stmt = stmt.order_by(Quotation.created_at.desc(), Quotation.id.desc()).offset(offset).limit(clamp_limit(limit))
        return [self.to_quotation_read(row) for row in session.scalars(stmt).all()]

    def get_quotation(self, session: Session, principal: Principal | None, quotation_id: int) -> QuotationRead:
        scope = self.quotation_repository.scope_for(principal)
        quotation = self._get_quotation(session, quotation_id)
        if not scope.allows(quotation.owner_user_id, quotation.assigned_to):
            raise NotFoundError("quotation not found")
        return self.to_quotation_read(quotation)

    def submit_quotation(self, session: Session, principal: Principal | None, quotation_id: int) -> QuotationRead:
        return self._transition_quotation(session, principal, quotation_id, QuotationStatus.SUBMITTED)

    def approve_quotation(self, session: Session, principal: Principal | None, quotation_id: int) -> QuotationRead:
        return self._transition_quotation(session, principal, quotation_id, QuotationStatus.APPROVED)

    def reject_quotation(self, session: Session, principal: Principal | None, quotation_id: int) -> QuotationRead:
        return self._transition_quotation(session, principal, quotation_id, QuotationStatus.REJECTED)

    def revise_quotation(self, session: Session, principal: Principal | None, quotation_id: int) -> QuotationRead:
        return self._transition_quotation(session, principal, quotation_id, QuotationStatus.DRAFT)

    def list_sales_orders(
        self,
        session: Session,
        principal: Principal | None,
        *,
        status: str | None = None,
        payment_status: str | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[SalesOrderRead]:
        scope = self.sales_order_repository.scope_for(principal)
        stmt: Select[tuple[SalesOrder]] = select(SalesOrder).options(selectinload(SalesOrder.lines))
        if status is not None:
            stage = _parse_stage(status, StatusKind.SALES_ORDER)
            stmt = stmt.where(self.sales_order_repository.status_clause(SalesOrder.status, [stage], StatusKind.SALES_ORDER))
        if payment_status is not None:
            payment = _parse_stage(payment_status, StatusKind.PAYMENT)
            stmt = stmt.where(
                self.sales_order_repository.status_clause(SalesOrder.payment_status, [payment], StatusKind.PAYMENT)
            )
        stmt = self.sales_order_repository.apply_scope_query(stmt, scope)
        stmt = stmt.order_by(SalesOrder.created_at.desc(), SalesOrder.id.desc()).offset(offset).limit(clamp_limit(limit))
        return [self.to_sales_order_read(row) for row in session.scalars(stmt).all()]

    def get_sales_order(self, session: Session, principal: Principal | None, sales_order_id: int) -> SalesOrderRead:
        scope = self.sales_order_repository.scope_for(principal)
        order = self._get_sales_order(session, sales_order_id)
        if not scope.allows(order.owner_user_id, order.assigned_to):
            raise NotFoundError("sales order not found")
        return self.to_sales_order_read(order)

    def transition_sales_order(
        self,
        session: Session,
        principal: Principal | None,
        sales_order_id: int,
        raw_target: str,
    ) -> SalesOrderRead:
        if principal is None:
            raise Unauthorized()
        target = _parse_stage(raw_target, StatusKind.SALES_ORDER)
        order = self._get_sales_order(session, sales_order_id)
        current = canonicalize(order.status, StatusKind.SALES_ORDER)

        roles = classify(principal)
        if not self._may_set_sales_order_status(principal, roles, order, target):  # type: ignore[arg-type]
            raise Forbidden(f"role may not set sales order status to {format_status_display(target)}")
        if not is_valid_transition(current, target):
            raise InvalidTransition(
                f"sales order cannot move from {format_status_display(current)} to {format_status_display(target)}"
            )

        before = {"status": order.status}
        order.status = target.value
        order.row_version += 1
        write_user_log(
            session,
            principal,
            activity="sales_order.status_changed",
            entity_type="revenue.sales_order",
            entity_id=order.id,
            old_data=before,
            new_data={"status": order.status},
        )
        session.commit()
        session.refresh(order)

        observe_transition(phase="sales_order", target=target.value)
        events.publish(
            {
                "event_type": "revenue.sales_order.status_changed",
                "sales_order_id": order.id,
                "from_status": before["status"],
                "to_status": order.status,
                "actor_user_id": principal.user_id,
            }
        )
        logger.info(
            "sales_order.status_changed",
            extra={"sales_order_id": order.id, "stage": before["status"], "target": order.status},
        )
        return self.to_sales_order_read(order)

    def set_payment_status(
        self,
        session: Session,
        principal: Principal | None,
        sales_order_id: int,
        raw_target: str,
    ) -> SalesOrderRead:
        if principal is None:
            raise Unauthorized()
        target = _parse_stage(raw_target, StatusKind.PAYMENT)
        order = self._get_sales_order(session, sales_order_id)
        current = canonicalize(order.payment_status, StatusKind.PAYMENT)

        if not classify(principal).has_any(*PAYMENT_ROLES):
            raise Forbidden("role may not change payment status")
        if canonicalize(order.status, StatusKind.SALES_ORDER) == SalesOrderStatus.CANCELLED:
            raise InvalidTransition("payment status cannot change on a cancelled sales order")
        if not is_valid_transition(current, target):
            raise InvalidTransition(
                f"payment cannot move from {format_status_display(current)} to {format_status_display(target)}"
            )

        before = {"payment_status": order.payment_status}
        order.payment_status = target.value
        order.row_version += 1
        write_user_log(
            session,
            principal,
            activity="sales_order.payment_changed",
            entity_type="revenue.sales_order",
            entity_id=order.id,
            old_data=before,
            new_data={"payment_status": order.payment_status},
        )
        session.commit()
        session.refresh(order)

        events.publish(
            {
                "event_type": "revenue.sales_order.payment_changed",
                "sales_order_id": order.id,
                "from_status": before["payment_status"],
                "to_status": order.payment_status,
                "actor_user_id": principal.user_id,
            }
        )
        return self.to_sales_order_read(order)

    def _transition_quotation(
        self,
        session: Session,
        principal: Principal | None,
        quotation_id: int,
        target: QuotationStatus,
    ) -> QuotationRead:
        if principal is None:
            raise Unauthorized()
        quotation = self._get_quotation(session, quotation_id)
        current = canonicalize(quotation.status, StatusKind.QUOTATION)

        roles = classify(principal)
        if target in {QuotationStatus.APPROVED, QuotationStatus.REJECTED}:
            if not roles.is_manager(Domain.QUOTATIONS):
                raise Forbidden("only the sales manager may approve or reject quotations")
        elif not roles.is_superuser:
            if not roles.is_operator(Domain.QUOTATIONS) or roles.is_plain_manager(Domain.QUOTATIONS):
                raise Forbidden("role may not edit quotations")
            if not is_owner_or_assignee(principal, quotation.owner_user_id, quotation.assigned_to):
                raise Forbidden("only assigned sales or owner may change this quotation")

        if not is_valid_transition(current, target):
            raise InvalidTransition(
                f"quotation cannot move from {format_status_display(current)} to {format_status_display(target)}"
            )

        before = {"status": quotation.status}
        quotation.status = target.value
        quotation.row_version += 1
        write_user_log(
            session,
            principal,
            activity="quotation.status_changed",
            entity_type="revenue.quotation",
            entity_id=quotation.id,
            old_data=before,
            new_data={"status": quotation.status},
        )
        session.commit()
        session.refresh(quotation)

        observe_transition(phase="quotation", target=target.value)
        events.publish(
            {
                "event_type": "revenue.quotation.status_changed",
                "quotation_id": quotation.id,
                "from_status": before["status"],
                "to_status": quotation.status,
                "actor_user_id": principal.user_id,
            }
        )
        logger.info(
            "quotation.status_changed",
            extra={"quotation_id": quotation.id, "stage": before["status"], "target": quotation.status},
        )
        return self.to_quotation_read(quotation)

    @staticmethod
    def _may_set_sales_order_status(
        principal: Principal,
        roles: RoleSet,
        order: SalesOrder,
        target: SalesOrderStatus,
    ) -> bool:
        if roles.has_any(*SALES_ORDER_STATUS_ROLES.get(target, ())):
            return True
        if target == SalesOrderStatus.OPEN and roles.is_operator(Domain.SALES_ORDERS):
            return is_owner_or_assignee(principal, order.owner_user_id, order.assigned_to)
        return False

    def _get_quotation(self, session: Session, quotation_id: int) -> Quotation:
        quotation = session.scalar(
            select(Quotation).where(Quotation.id == quotation_id).options(selectinload(Quotation.lines))
        )
        if quotation is None:
            raise NotFoundError("quotation not found")
        return quotation

    def _get_sales_order(self, session: Session, sales_order_id: int) -> SalesOrder:
        order = session.scalar(
            select(SalesOrder).where(SalesOrder.id == sales_order_id).options(selectinload(SalesOrder.lines))
        )
        if order is None:
            raise NotFoundError("sales order not found")
        return order

    def to_quotation_read(self, quotation: Quotation) -> QuotationRead:
        stage = canonicalize(quotation.status, StatusKind.QUOTATION)
        payload = {
            "id": quotation.id,
            "quotation_no": quotation.quotation_no,
            "source_record_id": quotation.source_record_id,
            "customer_id": quotation.customer_id,
            "owner_user_id": quotation.owner_user_id,
            "assigned_to": quotation.assigned_to,
            "status": stage.value,
            "status_label": format_status_display(stage),
            "subtotal": quotation.subtotal,
            "discount": quotation.discount,
            "tax": quotation.tax,
            "total": quotation.total,
            "note": quotation.note,
            "created_by": quotation.created_by,
            "created_at": quotation.created_at,
            "updated_at": quotation.updated_at,
            "row_version": quotation.row_version,
            "lines": [QuotationLineRead.model_validate(line) for line in quotation.lines],
        }
        return QuotationRead.model_validate(payload)

    def to_sales_order_read(self, order: SalesOrder) -> SalesOrderRead:
        stage = canonicalize(order.status, StatusKind.SALES_ORDER)
        payment = canonicalize(order.payment_status, StatusKind.PAYMENT)
        payload = {
            "id": order.id,
            "sale_no": order.sale_no,
            "quotation_id": order.quotation_id,
            "customer_id": order.customer_id,
            "owner_user_id": order.owner_user_id,
            "assigned_to": order.assigned_to,
            "status": stage.value,
            "status_label": format_status_display(stage),
            "payment_status": payment.value,
            "subtotal": order.subtotal,
            "discount": order.discount,
            "tax": order.tax,
            "total": order.total,
            "note": order.note,
            "created_by": order.created_by,
            "created_at": order.created_at,
            "updated_at": order.updated_at,
            "row_version": order.row_version,
            "lines": [SalesOrderLineRead.model_validate(line) for line in order.lines],
        }
        return SalesOrderRead.model_validate(payload)


revenue_service = RevenueService()
