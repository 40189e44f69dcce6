from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from salesflow.platform.security.context import Principal


class Role(StrEnum):
    SUPERUSER = "superuser"
    SALES = "sales"
    MANAGER_SALES = "manager-sales"
    FINANCE = "finance"
    MANAGER_FINANCE = "manager-finance"
    WAREHOUSE = "warehouse"
    MANAGER_WAREHOUSE = "manager-warehouse"
    PURCHASING = "purchasing"
    MANAGER_PURCHASING = "manager-purchasing"
    DELIVERY = "delivery"


class Domain(StrEnum):
    LEADS = "leads"
    OPPORTUNITIES = "opportunities"
    QUOTATIONS = "quotations"
    SALES_ORDERS = "sales_orders"
    PURCHASE_ORDERS = "purchase_orders"


# (operator role, manager role) per domain.
DOMAIN_ROLES: dict[Domain, tuple[Role, Role]] = {
    Domain.LEADS: (Role.SALES, Role.MANAGER_SALES),
    Domain.OPPORTUNITIES: (Role.SALES, Role.MANAGER_SALES),
    Domain.QUOTATIONS: (Role.SALES, Role.MANAGER_SALES),
    Domain.SALES_ORDERS: (Role.SALES, Role.MANAGER_SALES),
    Domain.PURCHASE_ORDERS: (Role.PURCHASING, Role.MANAGER_PURCHASING),
}


@dataclass(frozen=True, slots=True)
class RoleSet:
    """Capability flags for a principal.

    Superuser answers yes to every predicate. Any other role matches only
    itself; a principal without a recognised role holds no capabilities and
    callers must deny explicitly.
    """

    roles: frozenset[Role] = frozenset()

    @property
    def is_superuser(self) -> bool:
        return Role.SUPERUSER in self.roles

    @property
    def is_empty(self) -> bool:
        return not self.roles

    def has(self, role: Role) -> bool:
        return self.is_superuser or role in self.roles

    def has_any(self, *roles: Role) -> bool:
        return any(self.has(role) for role in roles)

    def is_manager(self, domain: Domain) -> bool:
        return self.has(DOMAIN_ROLES[domain][1])

    def is_operator(self, domain: Domain) -> bool:
        return self.has(DOMAIN_ROLES[domain][0])

    def is_plain_manager(self, domain: Domain) -> bool:
        return self.is_manager(domain) and not self.is_superuser


_ROLE_BY_NAME = {role.value: role for role in Role}


def parse_role(raw: str | None) -> Role | None:
    if not raw:
        return None
    return _ROLE_BY_NAME.get(raw.strip().lower())


def classify(principal: Principal | None) -> RoleSet:
    if principal is None:
        return RoleSet()
    role = parse_role(principal.role)
    if role is None:
        return RoleSet()
    return RoleSet(frozenset({role}))
