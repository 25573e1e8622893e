"""Organizations, memberships and the active-organization context."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from expense_app.core.errors import GatewayError, NotAuthenticatedError
from expense_app.domain.context import OrganizationContext
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq
from expense_app.observability.tracing import log_event

from .entities import (
    CreateOrganization,
    Organization,
    OrganizationMember,
    OrganizationWithStats,
    UpdateOrganization,
    UpdateOrganizationMember,
    UserOrganizationContext,
)

ORGANIZATIONS_TABLE = "organizations"
MEMBERS_TABLE = "organization_members"
MEMBER_COLUMNS = "*, user:users!user_id(*)"


def _first(payload: Any) -> Optional[dict[str, Any]]:
    if isinstance(payload, list):
        return payload[0] if payload else None
    return payload or None


def _stats_from_payload(payload: dict[str, Any]) -> OrganizationWithStats:
    return OrganizationWithStats(
        organization=from_row(Organization, payload),
        member_count=payload.get("member_count", 0),
        active_member_count=payload.get("active_member_count", 0),
        pending_invitations=payload.get("pending_invitation_count", 0),
    )


def _context_from_payload(payload: dict[str, Any]) -> UserOrganizationContext:
    current_org = payload.get("current_organization")
    current_member = payload.get("current_membership")
    return UserOrganizationContext(
        user_id=payload["user_id"],
        current_organization=from_row(Organization, current_org) if current_org else None,
        current_membership=from_row(OrganizationMember, current_member) if current_member else None,
        organizations=from_rows(Organization, payload.get("organizations")),
        memberships=from_rows(OrganizationMember, payload.get("memberships")),
    )


class OrganizationService(DomainService):
    component = "organizations"

    @gateway_operation("Failed to create organization", notify=True)
    async def create_organization(self, dto: CreateOrganization) -> Organization:
        user_id = self._context.require_user_id()
        payload = _first(
            await self._gateway.rpc(
                "create_organization_with_admin",
                {
                    "p_name": dto.name,
                    "p_domain": dto.domain,
                    "p_settings": dto.settings,
                    "p_admin_user_id": user_id,
                },
            )
        )
        if not payload:
            raise GatewayError("No organization data returned")
        organization = from_row(Organization, payload)
        log_event("organizations.created", component=self.component, organization_id=organization.id)
        self._notifier.success(f'Organization "{organization.name}" created successfully')
        return organization

    @gateway_operation("Failed to fetch organization")
    async def get_organization(self, organization_id: str) -> Organization:
        row = await self._gateway.select_one(ORGANIZATIONS_TABLE, filters=[eq("id", organization_id)])
        return from_row(Organization, row)

    @gateway_operation("Failed to update organization", notify=True)
    async def update_organization(self, organization_id: str, dto: UpdateOrganization) -> Organization:
        values = drop_none(dto.model_dump())
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        rows = await self._gateway.update(ORGANIZATIONS_TABLE, values, filters=[eq("id", organization_id)])
        if not rows:
            raise GatewayError("Organization not found", status_code=404)
        organization = from_row(Organization, rows[0])

        current = self._context.organization.get()
        if current and current.id == organization.id:
            self._context.organization.set(OrganizationContext(organization, current.membership))
        self._notifier.success("Organization updated successfully")
        return organization

    @gateway_operation("Failed to fetch organization stats")
    async def get_organization_with_stats(self, organization_id: str) -> OrganizationWithStats:
        payload = _first(await self._gateway.rpc("get_organization_stats", {"p_organization_id": organization_id}))
        if not payload:
            raise GatewayError("Organization not found", status_code=404)
        return _stats_from_payload(payload)

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch members")
    async def get_members(self, organization_id: Optional[str] = None, *, active_only: bool = True) -> list[OrganizationMember]:
        organization_id = organization_id or self._context.require_organization_id()
        query = [eq("organization_id", organization_id)]
        if active_only:
            query.append(eq("is_active", True))
        rows = await self._gateway.select(
            MEMBERS_TABLE,
            columns=MEMBER_COLUMNS,
            filters=query,
            order=Order("created_at", ascending=False),
        )
        return from_rows(OrganizationMember, rows)

    @gateway_operation("Failed to fetch member")
    async def get_member(self, organization_id: str, user_id: str) -> Optional[OrganizationMember]:
        rows = await self._gateway.select(
            MEMBERS_TABLE,
            columns=MEMBER_COLUMNS,
            filters=[eq("organization_id", organization_id), eq("user_id", user_id)],
            limit=1,
        )
        return from_row(OrganizationMember, rows[0]) if rows else None

    @gateway_operation("Failed to update member", notify=True)
    async def update_member(self, membership_id: str, dto: UpdateOrganizationMember) -> OrganizationMember:
        rows = await self._gateway.update(
            MEMBERS_TABLE,
            drop_none(dto.model_dump()),
            filters=[eq("id", membership_id)],
            columns=MEMBER_COLUMNS,
        )
        if not rows:
            raise GatewayError("Member not found", status_code=404)
        return from_row(OrganizationMember, rows[0])

    async def deactivate_member(self, membership_id: str) -> None:
        await self._set_member_active(membership_id, False)
        self._notifier.success("Member deactivated")

    async def reactivate_member(self, membership_id: str) -> None:
        await self._set_member_active(membership_id, True)
        self._notifier.success("Member reactivated")

    @gateway_operation("Failed to change member status", notify=True)
    async def _set_member_active(self, membership_id: str, active: bool) -> None:
        await self._gateway.update(MEMBERS_TABLE, {"is_active": active}, filters=[eq("id", membership_id)])
        log_event("organizations.member_status", component=self.component,
                  membership_id=membership_id, is_active=active)

    # ------------------------------------------------------------------
    # Current organization
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch organizations")
    async def get_user_organizations(self) -> list[Organization]:
        user_id = self._context.require_user_id()
        rows = await self._gateway.select(
            MEMBERS_TABLE,
            columns="organization:organizations(*)",
            filters=[eq("user_id", user_id), eq("is_active", True)],
        )
        return [from_row(Organization, row["organization"]) for row in rows if row.get("organization")]

    @gateway_operation("Failed to load organization context")
    async def get_user_organization_context(self) -> Optional[UserOrganizationContext]:
        user_id = self._context.require_user_id()
        payload = _first(await self._gateway.rpc("get_user_organization_context", {"p_user_id": user_id}))
        return _context_from_payload(payload) if payload else None

    def set_current_organization(self, organization: Organization, membership: OrganizationMember) -> None:
        if not self._context.user_id:
            raise NotAuthenticatedError()
        self._context.acting_on_behalf_of.clear()
        self._context.organization.set(OrganizationContext(organization, membership))
        log_event("organizations.switched", component=self.component,
                  organization_id=organization.id, role=membership.role.value)

    def clear_current_organization(self) -> None:
        self._context.acting_on_behalf_of.clear()
        self._context.organization.clear()
