from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from src.radorder.domain.models.order import (
    Order,
    OrderEvent,
    OrderNote,
    OrderPriority,
    OrderStatus,
    OrderValidationState,
)


class Base(DeclarativeBase):
    pass


class OrderORM(Base):
    __tablename__ = "orders"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    patient_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    referring_organization_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    radiology_organization_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    created_by_user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    updated_by_user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    signed_by_user_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False)
    priority: Mapped[str] = mapped_column(String(16), nullable=False)

    original_dictation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    clinical_indication: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    modality: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    body_part: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    laterality: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    cpt_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    cpt_code_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Comma-joined, e.g. "M25.511,S43.431A".
    icd10_codes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    icd10_code_descriptions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    validation_status: Mapped[str] = mapped_column(String(16), nullable=False)
    compliance_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    validation_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    override_justification: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    insurance_provider: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    insurance_policy_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    signature_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    notes: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    history: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    _SCALAR_FIELDS = (
        "order_number",
        "patient_id",
        "referring_organization_id",
        "radiology_organization_id",
        "created_by_user_id",
        "updated_by_user_id",
        "signed_by_user_id",
        "original_dictation",
        "clinical_indication",
        "modality",
        "body_part",
        "laterality",
        "cpt_code",
        "cpt_code_description",
        "icd10_codes",
        "icd10_code_descriptions",
        "compliance_score",
        "validation_notes",
        "override_justification",
        "insurance_provider",
        "insurance_policy_number",
        "special_instructions",
        "signature_date",
        "created_at",
        "updated_at",
    )

    def update_from_domain(self, order: Order) -> None:
        for name in self._SCALAR_FIELDS:
            setattr(self, name, getattr(order, name))
        self.status = order.status.value
        self.priority = order.priority.value
        self.validation_status = order.validation_status.value
        self.notes = [note.model_dump(mode="json") for note in order.notes]
        self.history = [event.model_dump(mode="json") for event in order.history]

    @classmethod
    def from_domain(cls, order: Order) -> "OrderORM":
        orm = cls(id=order.id)
        orm.update_from_domain(order)
        return orm

    def to_domain(self) -> Order:
        values = {name: getattr(self, name) for name in self._SCALAR_FIELDS}
        return Order(
            id=self.id,
            status=OrderStatus(self.status),
            priority=OrderPriority(self.priority),
            validation_status=OrderValidationState(self.validation_status),
            notes=[OrderNote.model_validate(note) for note in self.notes or []],
            history=[OrderEvent.model_validate(event) for event in self.history or []],
            **values,
        )
