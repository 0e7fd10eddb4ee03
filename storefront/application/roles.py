import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional
from pydantic import BaseModel

from storefront.application.interfaces import EmailSender
from storefront.application.newsletter import normalize_email
from storefront.domain.exceptions import (
    DomainException, DuplicateInvitationError, DuplicateRoleError, PermissionDeniedError,
    RoleNotFoundError, ValidationError,
)
from storefront.domain.models import AppRole, SiteContent, StaffInvitation, UserRole

logger = logging.getLogger(__name__)

INVITATIONS_PAGE = "admin"
INVITATIONS_SECTION = "pending_invitations"


class InvitationResult(BaseModel):
    invitation: StaffInvitation
    warnings: List[str] = []


def parse_role(value) -> AppRole:
    try:
        return AppRole(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {value!r}")


class AuthorizeRoleUseCase:
    """Raises unless the user holds the role."""

    def __init__(self, unit_of_work, role: AppRole = AppRole.ADMIN):
        self._uow = unit_of_work
        self._role = role

    async def __call__(self, user_id: Optional[str]) -> None:
        if not user_id:
            raise PermissionDeniedError("User id is required")
        async with self._uow() as uow:
            held = await uow.roles.get(user_id, self._role)
        if not held:
            logger.warning(f"User {user_id} lacks role {self._role.value}")
            raise PermissionDeniedError(f"Role {self._role.value} required")


class AssignRoleUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: str, role: str, responsibilities: Optional[str] = None) -> UserRole:
        if not user_id:
            raise ValidationError("User id is required")
        app_role = parse_role(role)

        user_role = UserRole(
            id=str(uuid.uuid4()),
            user_id=user_id,
            role=app_role,
            responsibilities=responsibilities or None,
            created_at=datetime.now(timezone.utc),
        )
        async with self._uow() as uow:
            if await uow.roles.get(user_id, app_role):
                raise DuplicateRoleError("User already has this role")
            await uow.roles.create(user_role)
            await uow.commit()

        logger.info(f"Role {app_role.value} assigned to {user_id}")
        return user_role


class RevokeRoleUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, role_id: str) -> None:
        async with self._uow() as uow:
            user_role = await uow.roles.get_by_id(role_id)
            if not user_role:
                raise RoleNotFoundError(f"Role assignment {role_id} not found")
            await uow.roles.delete(role_id)
            await uow.commit()
        logger.info(f"Role {user_role.role.value} revoked from {user_role.user_id}")


class ListRolesUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: Optional[str] = None) -> List[UserRole]:
        async with self._uow() as uow:
            return await uow.roles.list(user_id=user_id)


async def _load_invitations(uow):
    section = await uow.content.get_by_key(INVITATIONS_PAGE, INVITATIONS_SECTION)
    if not section:
        return None, []
    raw = section.content.get("invitations") or []
    invitations = []
    for item in raw:
        try:
            invitations.append(StaffInvitation.model_validate(item))
        except ValueError:
            logger.warning(f"Skipping unreadable invitation entry: {item!r}")
    return section, invitations


async def _save_invitations(uow, section, invitations: List[StaffInvitation]) -> None:
    content = {"invitations": [i.model_dump(mode="json") for i in invitations]}
    if section:
        await uow.content.update_content(section.id, content)
    else:
        await uow.content.create(SiteContent(
            id=str(uuid.uuid4()),
            page_name=INVITATIONS_PAGE,
            section_key=INVITATIONS_SECTION,
            content=content,
            is_active=True,
            updated_at=datetime.now(timezone.utc),
        ))


class InviteStaffUseCase:
    def __init__(self, unit_of_work, email_sender: Optional[EmailSender] = None, site_url: str = ""):
        self._uow = unit_of_work
        self._email = email_sender
        self._site_url = site_url

    async def __call__(self, email: str, role: str, responsibilities: Optional[str] = None,
                       invited_by: Optional[str] = None) -> InvitationResult:
        email = normalize_email(email)
        app_role = parse_role(role)

        invitation = StaffInvitation(
            email=email,
            role=app_role,
            responsibilities=responsibilities or None,
            invited_by=invited_by or "system",
            created_at=datetime.now(timezone.utc),
        )
        async with self._uow() as uow:
            section, invitations = await _load_invitations(uow)
            if any(i.email == email and i.role == app_role for i in invitations):
                raise DuplicateInvitationError("User already has a pending invitation for this role")
            await _save_invitations(uow, section, invitations + [invitation])
            await uow.commit()
        logger.info(f"Invitation for {email} as {app_role.value} saved")

        warnings = []
        if self._email is not None:
            try:
                await self._email.send_email(
                    to=email,
                    subject="You have been invited to the admin team",
                    html=(
                        f"<p>You have been invited to join the team as <strong>{app_role.value}</strong>.</p>"
                        f"<p>Sign up at <a href=\"{self._site_url}/auth\">{self._site_url}/auth</a> "
                        f"with this email address to get access.</p>"
                    ),
                )
            except DomainException as e:
                logger.error(f"Invitation email to {email} failed: {e}")
                warnings.append("Invitation saved but email delivery failed")

        return InvitationResult(invitation=invitation, warnings=warnings)


class ListInvitationsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self) -> List[StaffInvitation]:
        async with self._uow() as uow:
            _, invitations = await _load_invitations(uow)
        return invitations


class CancelInvitationUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, email: str, role: str) -> None:
        email = normalize_email(email)
        app_role = parse_role(role)
        async with self._uow() as uow:
            section, invitations = await _load_invitations(uow)
            remaining = [i for i in invitations if not (i.email == email and i.role == app_role)]
            if len(remaining) == len(invitations):
                raise RoleNotFoundError(f"No pending invitation for {email} as {app_role.value}")
            await _save_invitations(uow, section, remaining)
            await uow.commit()
        logger.info(f"Invitation for {email} as {app_role.value} cancelled")
