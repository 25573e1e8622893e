"""Organization invitations: issue, resend, accept and bulk import from CSV."""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import urlencode

from expense_app.config import get_settings
from expense_app.core.errors import GatewayError, RowNotVisibleError, ValidationFailedError
from expense_app.domain.organizations.entities import OrganizationMember, UserRole
from expense_app.domain.rows import enum_value, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq
from expense_app.observability.tracing import log_event, log_failure

from .entities import BulkInvitation, CreateInvitation, Invitation

INVITATIONS_TABLE = "invitations"
EMAIL_FUNCTION = "send-invitation-email"
UNIQUE_VIOLATION_CODE = "23505"
EMAIL_FAILED_WARNING = (
    "Invitation created but email delivery failed. You can copy the invitation link and share it manually."
)

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ROLES = {role.value for role in UserRole}


def _skip_row(number: int, reason: str) -> None:
    log_event("invitations.csv_row_skipped", level="warning", component="invitations", row=number, reason=reason)


def parse_invitation_csv(content: str) -> list[CreateInvitation]:
    """Parse ``email,role,department,manager_email`` rows after a header line.

    Rows with a missing or malformed email or an unknown role are skipped and
    logged. The manager email column is not resolved to a member here.
    """
    invitations: list[CreateInvitation] = []
    for number, line in enumerate(content.strip().splitlines()[1:], start=1):
        line = line.strip()
        if not line:
            continue
        cells = [cell.strip() for cell in line.split(",")]
        email, role = (cells + ["", ""])[:2]
        department = cells[2] if len(cells) > 2 and cells[2] else None
        if not email or not role:
            _skip_row(number, "missing email or role")
            continue
        if not _EMAIL_PATTERN.match(email):
            _skip_row(number, "invalid email")
            continue
        if role.lower() not in _ROLES:
            _skip_row(number, "invalid role")
            continue
        invitations.append(CreateInvitation(email=email.lower(), role=UserRole(role.lower()), department=department))
    return invitations


def invitation_link(token: str) -> str:
    return f"{get_settings().app_base_url.rstrip('/')}/auth/accept-invitation?{urlencode({'token': token})}"


def _expires_at() -> str:
    expiry = timedelta(days=get_settings().invitation_expiry_days)
    return (datetime.now(timezone.utc) + expiry).isoformat()


def _duplicate_aware(exc: GatewayError) -> GatewayError:
    if exc.code != UNIQUE_VIOLATION_CODE:
        return exc
    return GatewayError(
        "An invitation for this email already exists",
        code=exc.code,
        status_code=exc.status_code,
        details=exc.details,
        hint=exc.hint,
    )


class InvitationService(DomainService):
    component = "invitations"

    @gateway_operation("Failed to create invitation", notify=True)
    async def create_invitation(self, dto: CreateInvitation) -> Invitation:
        user_id, organization_id = self._context.require_user_and_organization()
        invitations = await self._insert([self._values(dto, user_id, organization_id)])
        await self._send_email(invitations[0])
        return invitations[0]

    @gateway_operation("Failed to create invitations", notify=True)
    async def create_bulk_invitations(self, dto: BulkInvitation) -> list[Invitation]:
        user_id, organization_id = self._context.require_user_and_organization()
        invitations = await self._insert([self._values(item, user_id, organization_id) for item in dto.invitations])
        for invitation in invitations:
            await self._send_email(invitation)
        return invitations

    @gateway_operation("Failed to look up invitation")
    async def get_invitation_by_token(self, token: str) -> Optional[Invitation]:
        try:
            payload = await self._gateway.rpc("get_invitation_by_token", {"p_token": token})
        except RowNotVisibleError:
            return None
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        return from_row(Invitation, payload) if payload else None

    @gateway_operation("Failed to fetch invitations")
    async def get_organization_invitations(self, status: Optional[str] = None) -> list[Invitation]:
        organization_id = self._context.require_organization_id()
        query = [eq("organization_id", organization_id)]
        if status:
            query.append(eq("status", status))
        rows = await self._gateway.select(INVITATIONS_TABLE, filters=query, order=Order("created_at", ascending=False))
        return from_rows(Invitation, rows)

    @gateway_operation("Failed to count pending invitations")
    async def get_pending_count(self) -> int:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            INVITATIONS_TABLE,
            columns="id",
            filters=[eq("organization_id", organization_id), eq("status", "pending")],
        )
        return len(rows)

    @gateway_operation("Failed to accept invitation", notify=True)
    async def accept_invitation(self, token: str) -> OrganizationMember:
        user_id = self._context.require_user_id()
        payload = await self._gateway.rpc("accept_invitation", {"p_token": token, "p_user_id": user_id})
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not payload:
            raise ValidationFailedError("Failed to accept invitation")
        membership = from_row(OrganizationMember, payload)
        log_event("invitations.accepted", component=self.component, organization_id=membership.organization_id)
        self._notifier.success("Successfully joined organization")
        return membership

    @gateway_operation("Failed to revoke invitation", notify=True)
    async def revoke_invitation(self, invitation_id: str) -> None:
        await self._gateway.update(INVITATIONS_TABLE, {"status": "revoked"}, filters=[eq("id", invitation_id)])
        self._notifier.success("Invitation revoked")

    @gateway_operation("Failed to resend invitation", notify=True)
    async def resend_invitation(self, invitation_id: str) -> Invitation:
        """Pushes the expiry out again and re-sends the email."""
        rows = await self._gateway.update(
            INVITATIONS_TABLE,
            {"expires_at": _expires_at()},
            filters=[eq("id", invitation_id)],
        )
        if not rows:
            raise ValidationFailedError("Invitation not found")
        invitation = from_row(Invitation, rows[0])
        await self._send_email(invitation)
        return invitation

    @gateway_operation("Failed to delete invitation", notify=True)
    async def delete_invitation(self, invitation_id: str) -> None:
        await self._gateway.delete(INVITATIONS_TABLE, filters=[eq("id", invitation_id)])
        self._notifier.success("Invitation deleted")

    @gateway_operation("Failed to expire invitations")
    async def expire_old_invitations(self) -> None:
        await self._gateway.rpc("expire_old_invitations")

    @staticmethod
    def _values(dto: CreateInvitation, user_id: str, organization_id: str) -> dict[str, Any]:
        return {
            "organization_id": organization_id,
            "email": dto.email.lower(),
            "role": enum_value(dto.role),
            "manager_id": dto.manager_id,
            "department": dto.department,
            "invited_by": user_id,
            "status": "pending",
            "expires_at": _expires_at(),
        }

    async def _insert(self, values: list[dict[str, Any]]) -> list[Invitation]:
        try:
            rows = await self._gateway.insert(INVITATIONS_TABLE, values)
        except GatewayError as exc:
            duplicate = _duplicate_aware(exc)
            if duplicate is exc:
                raise
            raise duplicate from exc
        return from_rows(Invitation, rows)

    async def _send_email(self, invitation: Invitation) -> None:
        # The invitation row stands even when delivery fails; the link can be shared by hand.
        try:
            await self._gateway.invoke_function(
                EMAIL_FUNCTION,
                {
                    "invitation_id": invitation.id,
                    "email": invitation.email,
                    "token": invitation.token,
                    "organization_id": invitation.organization_id,
                },
            )
        except GatewayError as exc:
            log_failure(self.component, "invitations.email_failed", exc, invitation_id=invitation.id)
            self._notifier.warning(EMAIL_FAILED_WARNING)
