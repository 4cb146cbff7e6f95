from __future__ import annotations

from typing import Collection, Iterable, Optional
from uuid import UUID

from sqlalchemy import select

from src.radorder.domain.models.order import Order, OrderStatus
from src.radorder.infra.db.models import OrderORM
from src.radorder.infra.db.repositories import OrderRepository
from src.radorder.infra.db.session import SessionFactory


class SqlOrderRepository(OrderRepository):
    """SQLAlchemy-backed OrderRepository."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, order_id: UUID) -> Optional[Order]:
        with self._session_factory() as session:
            orm = session.get(OrderORM, order_id)
            return orm.to_domain() if orm is not None else None

    def get_by_number(self, order_number: str) -> Optional[Order]:
        with self._session_factory() as session:
            orm = session.scalars(select(OrderORM).where(OrderORM.order_number == order_number)).first()
            return orm.to_domain() if orm is not None else None

    def list_by_filters(
        self,
        *,
        referring_organization_id: Optional[UUID] = None,
        radiology_organization_id: Optional[UUID] = None,
        statuses: Optional[Collection[OrderStatus]] = None,
        exclude_statuses: Optional[Collection[OrderStatus]] = None,
    ) -> Iterable[Order]:
        query = select(OrderORM)
        if referring_organization_id is not None:
            query = query.where(OrderORM.referring_organization_id == referring_organization_id)
        if radiology_organization_id is not None:
            query = query.where(OrderORM.radiology_organization_id == radiology_organization_id)
        if statuses is not None:
            query = query.where(OrderORM.status.in_([s.value for s in statuses]))
        if exclude_statuses is not None:
            query = query.where(OrderORM.status.not_in([s.value for s in exclude_statuses]))
        query = query.order_by(OrderORM.created_at.desc())

        with self._session_factory() as session:
            return [orm.to_domain() for orm in session.scalars(query).all()]

    def save(self, order: Order) -> None:
        with self._session_factory() as session:
            existing = session.get(OrderORM, order.id)
            if existing is None:
                session.add(OrderORM.from_domain(order))
            else:
                existing.update_from_domain(order)
            session.commit()
