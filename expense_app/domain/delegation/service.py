"""Delegation: letting one user create and submit expenses for another."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.context import SessionContext, StateContainer
from expense_app.domain.notifications import Notifier
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import GatewayClient, Order, eq
from expense_app.observability.tracing import log_event

from .entities import (
    CreateDelegation,
    DelegateWithUser,
    DelegationAuditEntry,
    DelegationMetadata,
    DelegationScope,
    DelegationWithUser,
    ExpenseDelegation,
    UpdateDelegation,
)

DELEGATIONS_TABLE = "expense_delegations"
AUDIT_TABLE = "delegation_audit_log"

DELEGATION_WITH_USERS = (
    "*, delegator:users!delegator_id(id, full_name, email), "
    "delegate:users!delegate_id(id, full_name, email)"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DelegationService(DomainService):
    component = "delegation"

    def __init__(
        self,
        gateway: GatewayClient,
        context: SessionContext,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(gateway, context, notifier)
        self.delegators: StateContainer[list[DelegationWithUser]] = StateContainer([])

    # ------------------------------------------------------------------
    # Who can act for whom
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch delegates")
    async def get_my_delegates(self) -> list[DelegateWithUser]:
        user_id = self._context.require_user_id()
        rows = await self._gateway.rpc("get_delegates_for_user", {"p_user_id": user_id})
        return from_rows(DelegateWithUser, rows)

    @gateway_operation("Failed to fetch delegators")
    async def get_my_delegators(self) -> list[DelegationWithUser]:
        """Users the signed-in user may act for; refreshes the ``delegators`` cache."""
        user_id = self._context.require_user_id()
        rows = await self._gateway.rpc("get_delegators_for_user", {"p_user_id": user_id})
        delegators = from_rows(DelegationWithUser, rows)
        self.delegators.set(delegators)
        return delegators

    def has_delegations(self) -> bool:
        return bool(self.delegators.get())

    @gateway_operation("Failed to check delegation")
    async def can_act_on_behalf_of(
        self,
        delegator_id: str,
        action: DelegationScope = DelegationScope.ALL,
    ) -> bool:
        user_id = self._context.require_user_id()
        allowed = await self._gateway.rpc(
            "can_act_on_behalf_of",
            {"p_delegate_id": user_id, "p_delegator_id": delegator_id, "p_action": DelegationScope(action).value},
        )
        return bool(allowed)

    def set_acting_on_behalf_of(self, delegator: Optional[DelegationWithUser]) -> None:
        self._context.acting_on_behalf_of.set(delegator)
        if delegator is not None:
            log_event("delegation.acting_for", component=self.component, delegator_id=delegator.delegator_id)
        else:
            log_event("delegation.acting_cleared", component=self.component)

    def get_effective_user_id(self) -> str:
        """The delegator while acting on their behalf, otherwise the signed-in user."""
        acting_for = self._context.acting_on_behalf_of.get()
        if acting_for is not None:
            return acting_for.delegator_id
        return self._context.require_user_id()

    def get_delegation_metadata(self) -> Optional[DelegationMetadata]:
        acting_for = self._context.acting_on_behalf_of.get()
        user_id = self._context.user_id
        if acting_for is None or not user_id:
            return None
        return DelegationMetadata(submitted_by=user_id, submitted_on_behalf_of=acting_for.delegator_id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch delegations")
    async def get_all_delegations(self) -> list[ExpenseDelegation]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            DELEGATIONS_TABLE,
            columns=DELEGATION_WITH_USERS,
            filters=[eq("organization_id", organization_id)],
            order=Order("created_at", ascending=False),
        )
        return from_rows(ExpenseDelegation, rows)

    @gateway_operation("Failed to fetch delegation")
    async def get_delegation(self, delegation_id: str) -> ExpenseDelegation:
        row = await self._gateway.select_one(
            DELEGATIONS_TABLE,
            columns=DELEGATION_WITH_USERS,
            filters=[eq("id", delegation_id)],
        )
        return from_row(ExpenseDelegation, row)

    @gateway_operation("Failed to create delegation", notify=True)
    async def create_delegation(self, dto: CreateDelegation) -> str:
        """Returns the new delegation id."""
        organization_id = self._context.require_organization_id()
        if dto.delegator_id == dto.delegate_id:
            raise ValidationFailedError("A user cannot delegate to themselves")
        delegation_id = await self._gateway.rpc(
            "create_delegation",
            {
                "p_organization_id": organization_id,
                "p_delegator_id": dto.delegator_id,
                "p_delegate_id": dto.delegate_id,
                "p_scope": dto.scope.value,
                "p_valid_from": dto.valid_from or _now(),
                "p_valid_until": dto.valid_until,
                "p_notes": dto.notes,
                "p_created_by": self._context.user_id,
            },
        )
        log_event("delegation.created", component=self.component, delegation_id=delegation_id)
        return delegation_id

    @gateway_operation("Failed to update delegation")
    async def update_delegation(self, delegation_id: str, dto: UpdateDelegation) -> ExpenseDelegation:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(DELEGATIONS_TABLE, values, filters=[eq("id", delegation_id)])
        if not rows:
            raise ValidationFailedError("Delegation not found")
        return from_row(ExpenseDelegation, rows[0])

    @gateway_operation("Failed to revoke delegation", notify=True)
    async def revoke_delegation(self, delegation_id: str) -> bool:
        revoked = await self._gateway.rpc(
            "revoke_delegation",
            {"p_delegation_id": delegation_id, "p_revoked_by": self._context.user_id},
        )
        log_event("delegation.revoked", component=self.component, delegation_id=delegation_id)
        if self._context.user_id:
            await self.get_my_delegators()
        return bool(revoked)

    @gateway_operation("Failed to delete delegation")
    async def delete_delegation(self, delegation_id: str) -> None:
        await self._gateway.delete(DELEGATIONS_TABLE, filters=[eq("id", delegation_id)])

    @gateway_operation("Failed to fetch delegation audit log")
    async def get_delegation_audit_log(self, delegation_id: str) -> list[DelegationAuditEntry]:
        rows = await self._gateway.select(
            AUDIT_TABLE,
            filters=[eq("delegation_id", delegation_id)],
            order=Order("created_at", ascending=False),
        )
        return from_rows(DelegationAuditEntry, rows)
