"""Expense policy management. Enforcement itself happens on the gateway."""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Optional

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.concurrency import gather_fail_fast
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq
from expense_app.observability.tracing import log_event

from .entities import CreatePolicy, EffectivePolicy, ExpensePolicy, PolicyPreset, PolicyStats, UpdatePolicy

POLICIES_TABLE = "expense_policies"
PRESETS_TABLE = "policy_presets"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PolicyService(DomainService):
    component = "policies"

    @gateway_operation("Failed to fetch policies")
    async def get_policies(self) -> list[ExpensePolicy]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            POLICIES_TABLE,
            filters=[eq("organization_id", organization_id)],
            order=[Order("priority", ascending=False), Order("name")],
        )
        return from_rows(ExpensePolicy, rows)

    @gateway_operation("Failed to fetch policy")
    async def get_policy(self, policy_id: str) -> ExpensePolicy:
        row = await self._gateway.select_one(POLICIES_TABLE, filters=[eq("id", policy_id)])
        return from_row(ExpensePolicy, row)

    @gateway_operation("Failed to create policy")
    async def create_policy(self, dto: CreatePolicy) -> ExpensePolicy:
        organization_id = self._context.require_organization_id()
        values = drop_none(dto.model_dump())
        values.update(organization_id=organization_id, created_by=self._context.user_id)
        rows = await self._gateway.insert(POLICIES_TABLE, values)
        policy = from_row(ExpensePolicy, rows[0])
        log_event("policies.created", component=self.component, policy_id=policy.id)
        return policy

    @gateway_operation("Failed to update policy")
    async def update_policy(self, policy_id: str, dto: UpdatePolicy) -> ExpensePolicy:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(POLICIES_TABLE, values, filters=[eq("id", policy_id)])
        if not rows:
            raise ValidationFailedError("Policy not found")
        log_event("policies.updated", component=self.component, policy_id=policy_id)
        return from_row(ExpensePolicy, rows[0])

    @gateway_operation("Failed to delete policy")
    async def delete_policy(self, policy_id: str) -> None:
        await self._gateway.delete(POLICIES_TABLE, filters=[eq("id", policy_id)])
        log_event("policies.deleted", component=self.component, policy_id=policy_id)

    async def toggle_policy_active(self, policy_id: str, is_active: bool) -> ExpensePolicy:
        return await self.update_policy(policy_id, UpdatePolicy(is_active=is_active))

    @gateway_operation("Failed to fetch policy presets")
    async def get_presets(self) -> list[PolicyPreset]:
        rows = await self._gateway.select(
            PRESETS_TABLE,
            order=[Order("is_default", ascending=False), Order("name")],
        )
        return from_rows(PolicyPreset, rows)

    @gateway_operation("Failed to apply policy preset")
    async def apply_preset(self, preset_name: str) -> int:
        """Create the preset's policies for the organization; returns how many were created."""
        organization_id = self._context.require_organization_id()
        result: Any = await self._gateway.rpc(
            "apply_policy_preset",
            {"p_organization_id": organization_id, "p_preset_name": preset_name},
        )
        log_event("policies.preset_applied", component=self.component, preset=preset_name, result=result)
        if isinstance(result, dict):
            return int(result.get("policies_created", 0))
        return int(result or 0)

    @gateway_operation("Failed to fetch effective policy")
    async def get_effective_policy(self, user_id: str, category: Optional[str] = None) -> EffectivePolicy:
        organization_id = self._context.require_organization_id()
        payload = await self._gateway.rpc(
            "get_effective_policy",
            {"p_organization_id": organization_id, "p_user_id": user_id, "p_category": category},
        )
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        return from_row(EffectivePolicy, payload) if payload else EffectivePolicy()

    @gateway_operation("Failed to fetch policies")
    async def get_policies_by_scope(self, scope_type: str) -> list[ExpensePolicy]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            POLICIES_TABLE,
            filters=[eq("organization_id", organization_id), eq("scope_type", scope_type)],
            order=Order("priority", ascending=False),
        )
        return from_rows(ExpensePolicy, rows)

    @gateway_operation("Failed to fetch policy stats")
    async def get_policy_stats(self) -> PolicyStats:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            POLICIES_TABLE,
            columns="id, is_active, scope_type",
            filters=[eq("organization_id", organization_id)],
        )
        return PolicyStats(
            total=len(rows),
            active=sum(1 for row in rows if row.get("is_active")),
            by_scope=dict(Counter(row.get("scope_type") for row in rows)),
        )

    async def duplicate_policy(self, policy_id: str, new_name: str) -> CreatePolicy:
        """A create payload copying an existing policy under a new name. Nothing is saved."""
        policy = await self.get_policy(policy_id)
        fields = {
            key: value
            for key, value in vars(policy).items()
            if key in CreatePolicy.model_fields and key != "name"
        }
        return CreatePolicy(name=new_name, **fields)

    @gateway_operation("Failed to update policy priorities")
    async def update_priorities(self, priorities: dict[str, int]) -> None:
        stamp = _now()
        await gather_fail_fast(
            *(
                self._gateway.update(
                    POLICIES_TABLE,
                    {"priority": priority, "updated_at": stamp},
                    filters=[eq("id", policy_id)],
                    columns="id",
                )
                for policy_id, priority in priorities.items()
            )
        )
