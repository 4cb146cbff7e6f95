from __future__ import annotations

from typing import Collection, Dict, Iterable, Optional
from uuid import UUID

from src.radorder.domain.models.order import Order, OrderStatus
from src.radorder.infra.db.repositories import OrderRepository


class InMemoryOrderRepository(OrderRepository):
    def __init__(self) -> None:
        self._orders: Dict[UUID, Order] = {}

    def get(self, order_id: UUID) -> Optional[Order]:
        order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order is not None else None

    def get_by_number(self, order_number: str) -> Optional[Order]:
        for order in self._orders.values():
            if order.order_number == order_number:
                return order.model_copy(deep=True)
        return None

    def list_by_filters(
        self,
        *,
        referring_organization_id: Optional[UUID] = None,
        radiology_organization_id: Optional[UUID] = None,
        statuses: Optional[Collection[OrderStatus]] = None,
        exclude_statuses: Optional[Collection[OrderStatus]] = None,
    ) -> Iterable[Order]:
        orders = sorted(self._orders.values(), key=lambda o: o.created_at, reverse=True)
        for order in orders:
            if referring_organization_id is not None and order.referring_organization_id != referring_organization_id:
                continue
            if radiology_organization_id is not None and order.radiology_organization_id != radiology_organization_id:
                continue
            if statuses is not None and order.status not in statuses:
                continue
            if exclude_statuses is not None and order.status in exclude_statuses:
                continue
            yield order.model_copy(deep=True)

    def save(self, order: Order) -> None:
        self._orders[order.id] = order.model_copy(deep=True)


# Replaced by a SQL-backed repository in bootstrap.init_sql_repositories when
# USE_SQL_REPOS is enabled. Callers look it up through this module at call
# time so the swap is visible everywhere.
order_repository: OrderRepository = InMemoryOrderRepository()
