from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from src.radorder.config import settings
from src.radorder.domain.models.invitation import Invitation, InvitationStatus
from src.radorder.domain.models.user import User, UserRole
from src.radorder.errors import NotFoundError, WorkflowError
from src.radorder.services.audit.service import audit_service
from src.radorder.services.users.passwords import hash_password, verify_password


class InMemoryUserService:
    """In-memory user and invitation store.

    Emails are unique across the whole system and compared case-insensitively.
    """

    def __init__(self) -> None:
        self._users: Dict[UUID, User] = {}
        self._invitations: Dict[str, Invitation] = {}

    def reset(self) -> None:
        self._users.clear()
        self._invitations.clear()

    # Users ----------------------------------------------------------------

    def create_user(
        self,
        *,
        organization_id: UUID,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        specialty: Optional[str] = None,
        npi: Optional[str] = None,
    ) -> User:
        if self.get_user_by_email(email) is not None:
            raise WorkflowError("A user with this email already exists", code="EMAIL_TAKEN")

        user = User(
            id=uuid4(),
            organization_id=organization_id,
            email=email.strip().lower(),
            first_name=first_name,
            last_name=last_name,
            role=role,
            specialty=specialty,
            npi=npi,
            password_hash=hash_password(password),
            created_at=datetime.now(timezone.utc),
        )
        self._users[user.id] = user
        return user

    def get_user(self, user_id: UUID) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        needle = email.strip().lower()
        for user in self._users.values():
            if user.email == needle:
                return user
        return None

    def list_users(self, organization_id: UUID) -> List[User]:
        users = [user for user in self._users.values() if user.organization_id == organization_id]
        return sorted(users, key=lambda user: (user.last_name.lower(), user.first_name.lower()))

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Return the user for valid credentials, else None."""

        user = self.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        user.last_login_at = datetime.now(timezone.utc)
        return user

    # Invitations ------------------------------------------------------------

    def create_invitation(
        self,
        *,
        organization_id: UUID,
        email: str,
        role: UserRole,
        invited_by_user_id: UUID,
    ) -> Invitation:
        if self.get_user_by_email(email) is not None:
            raise WorkflowError("A user with this email already exists", code="EMAIL_TAKEN")

        now = datetime.now(timezone.utc)
        invitation = Invitation(
            id=uuid4(),
            organization_id=organization_id,
            email=email.strip().lower(),
            role=role,
            token=secrets.token_urlsafe(32),
            invited_by_user_id=invited_by_user_id,
            expires_at=now + timedelta(hours=settings.invitation_expire_hours),
            created_at=now,
        )
        self._invitations[invitation.token] = invitation
        audit_service.log_event(
            action="invite",
            resource_type="invitation",
            resource_id=str(invitation.id),
            organization_id=str(organization_id),
            extra={"role": role.value},
        )
        return invitation

    def get_invitation(self, token: str) -> Invitation:
        invitation = self._invitations.get(token)
        if invitation is None:
            raise NotFoundError("Invitation not found")
        if invitation.status == InvitationStatus.PENDING and invitation.expires_at <= datetime.now(timezone.utc):
            invitation.status = InvitationStatus.EXPIRED
        return invitation

    def accept_invitation(
        self,
        token: str,
        *,
        password: str,
        first_name: str,
        last_name: str,
        specialty: Optional[str] = None,
        npi: Optional[str] = None,
    ) -> User:
        invitation = self.get_invitation(token)
        if invitation.status == InvitationStatus.EXPIRED:
            raise WorkflowError("Invitation has expired", code="INVITATION_EXPIRED")
        if invitation.status != InvitationStatus.PENDING:
            raise WorkflowError("Invitation has already been used", code="INVITATION_USED")

        user = self.create_user(
            organization_id=invitation.organization_id,
            email=invitation.email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=invitation.role,
            specialty=specialty,
            npi=npi,
        )
        invitation.status = InvitationStatus.ACCEPTED
        invitation.accepted_at = datetime.now(timezone.utc)
        audit_service.log_event(
            action="accept",
            resource_type="invitation",
            resource_id=str(invitation.id),
            subject=f"user:{user.id}",
            organization_id=str(invitation.organization_id),
        )
        return user


user_service = InMemoryUserService()
