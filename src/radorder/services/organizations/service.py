from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from src.radorder.domain.models.organization import (
    Organization,
    OrganizationRelationship,
    OrganizationType,
    RelationshipStatus,
)
from src.radorder.errors import InvalidInputError, NotFoundError, PermissionDeniedError, WorkflowError
from src.radorder.services.audit.service import audit_service

# Relationships in these states block a new request between the same pair.
_OPEN_STATUSES = {RelationshipStatus.PENDING, RelationshipStatus.ACTIVE}


class InMemoryOrganizationService:
    """In-memory store for organizations and the links between them."""

    def __init__(self) -> None:
        self._organizations: Dict[UUID, Organization] = {}
        self._relationships: Dict[UUID, OrganizationRelationship] = {}

    def reset(self) -> None:
        self._organizations.clear()
        self._relationships.clear()

    # Organizations -------------------------------------------------------

    def create_organization(self, *, name: str, type: OrganizationType, **details: Optional[str]) -> Organization:
        org = Organization(
            id=uuid4(),
            name=name.strip(),
            type=type,
            created_at=datetime.now(timezone.utc),
            **details,
        )
        self._organizations[org.id] = org
        return org

    def get_organization(self, organization_id: UUID) -> Optional[Organization]:
        return self._organizations.get(organization_id)

    def require_organization(self, organization_id: UUID) -> Organization:
        org = self.get_organization(organization_id)
        if org is None:
            raise NotFoundError("Organization not found")
        return org

    def search(self, query: str) -> List[Organization]:
        needle = query.strip().lower()
        matches = [org for org in self._organizations.values() if needle in org.name.lower()]
        return sorted(matches, key=lambda org: org.name.lower())

    # Relationships -------------------------------------------------------

    def _find_open_relationship(self, a: UUID, b: UUID) -> Optional[OrganizationRelationship]:
        for rel in self._relationships.values():
            if rel.status in _OPEN_STATUSES and rel.involves(a) and rel.involves(b):
                return rel
        return None

    def request_relationship(
        self,
        *,
        organization_id: UUID,
        related_organization_id: UUID,
        initiated_by_user_id: UUID,
        notes: Optional[str] = None,
    ) -> OrganizationRelationship:
        if organization_id == related_organization_id:
            raise InvalidInputError("An organization cannot link to itself")

        org = self.require_organization(organization_id)
        target = self.require_organization(related_organization_id)
        if org.type == target.type:
            raise InvalidInputError("Relationships link a referring practice with a radiology group")

        if self._find_open_relationship(organization_id, related_organization_id) is not None:
            raise WorkflowError("A relationship with this organization already exists", code="RELATIONSHIP_EXISTS")

        now = datetime.now(timezone.utc)
        rel = OrganizationRelationship(
            id=uuid4(),
            organization_id=organization_id,
            related_organization_id=related_organization_id,
            initiated_by_user_id=initiated_by_user_id,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        self._relationships[rel.id] = rel
        audit_service.log_event(
            action="request",
            resource_type="organization_relationship",
            resource_id=str(rel.id),
            organization_id=str(organization_id),
        )
        return rel

    def list_relationships(self, organization_id: UUID) -> List[OrganizationRelationship]:
        rels = [rel for rel in self._relationships.values() if rel.involves(organization_id)]
        return sorted(rels, key=lambda rel: rel.created_at, reverse=True)

    def list_incoming_requests(self, organization_id: UUID) -> List[OrganizationRelationship]:
        return [
            rel
            for rel in self.list_relationships(organization_id)
            if rel.related_organization_id == organization_id and rel.status == RelationshipStatus.PENDING
        ]

    def update_relationship_status(
        self,
        relationship_id: UUID,
        *,
        organization_id: UUID,
        user_id: UUID,
        status: RelationshipStatus,
    ) -> OrganizationRelationship:
        """Approve, reject or terminate a relationship on behalf of one party.

        Only the requested organization answers a pending request; either
        party may terminate an active link.
        """

        rel = self._relationships.get(relationship_id)
        if rel is None or not rel.involves(organization_id):
            raise NotFoundError("Relationship not found")

        if status in (RelationshipStatus.ACTIVE, RelationshipStatus.REJECTED):
            if rel.status != RelationshipStatus.PENDING:
                raise WorkflowError(f"Relationship is {rel.status.value}, not pending")
            if rel.related_organization_id != organization_id:
                raise PermissionDeniedError("Only the requested organization can answer this request")
            if status == RelationshipStatus.ACTIVE:
                rel.approved_by_user_id = user_id
        elif status == RelationshipStatus.TERMINATED:
            if rel.status != RelationshipStatus.ACTIVE:
                raise WorkflowError(f"Relationship is {rel.status.value}, not active")
        else:
            raise InvalidInputError(f"Cannot set relationship status to {status.value}")

        previous = rel.status
        rel.status = status
        rel.updated_at = datetime.now(timezone.utc)
        audit_service.log_event(
            action="update_status",
            resource_type="organization_relationship",
            resource_id=str(rel.id),
            organization_id=str(organization_id),
            extra={"previous_status": previous.value, "new_status": status.value},
        )
        return rel

    def has_active_relationship(self, a: UUID, b: UUID) -> bool:
        return any(
            rel.status == RelationshipStatus.ACTIVE and rel.involves(a) and rel.involves(b)
            for rel in self._relationships.values()
        )


organization_service = InMemoryOrganizationService()
