from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Collection, Iterable, Optional
from uuid import UUID

from src.radorder.domain.models.order import Order, OrderStatus


class OrderRepository(ABC):
    @abstractmethod
    def get(self, order_id: UUID) -> Optional[Order]:
        raise NotImplementedError

    @abstractmethod
    def get_by_number(self, order_number: str) -> Optional[Order]:
        raise NotImplementedError

    @abstractmethod
    def list_by_filters(
        self,
        *,
        referring_organization_id: Optional[UUID] = None,
        radiology_organization_id: Optional[UUID] = None,
        statuses: Optional[Collection[OrderStatus]] = None,
        exclude_statuses: Optional[Collection[OrderStatus]] = None,
    ) -> Iterable[Order]:
        """Yield orders matching every given filter, newest first."""
        raise NotImplementedError

    @abstractmethod
    def save(self, order: Order) -> None:
        raise NotImplementedError
