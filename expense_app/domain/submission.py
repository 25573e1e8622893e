"""Submitting expenses and reports into an approval chain."""
from __future__ import annotations

from typing import Optional

from expense_app.core.errors import GatewayError, RowNotVisibleError
from expense_app.infrastructure.gateway import GatewayClient, eq

MEMBERS_TABLE = "organization_members"

NO_MANAGER_MESSAGE = (
    "Cannot submit for approval: You do not have a manager assigned. "
    "Please contact your organization administrator to assign a manager to your account."
)
NO_APPROVER_MESSAGE = (
    "Cannot submit for approval: No approver is available for the required role. "
    "Please contact your organization administrator."
)


async def has_active_manager(gateway: GatewayClient, user_id: str, organization_id: str) -> bool:
    """True when the user's membership names a manager who is still active."""
    try:
        membership = await gateway.select_one(
            MEMBERS_TABLE,
            columns="manager_id",
            filters=[
                eq("user_id", user_id),
                eq("organization_id", organization_id),
                eq("is_active", True),
            ],
        )
    except RowNotVisibleError:
        return False
    manager_id = membership.get("manager_id")
    if not manager_id:
        return False
    rows = await gateway.select(
        MEMBERS_TABLE,
        columns="id",
        filters=[eq("id", manager_id), eq("is_active", True)],
        limit=1,
    )
    return bool(rows)


def friendly_submission_error(exc: GatewayError) -> Optional[GatewayError]:
    """Rewrite the chain builder's known failures into actionable messages."""
    if "no active manager" in exc.message:
        message = NO_MANAGER_MESSAGE
    elif "No eligible user found with role" in exc.message:
        message = NO_APPROVER_MESSAGE
    else:
        return None
    return GatewayError(
        message,
        code=exc.code,
        status_code=exc.status_code,
        details=exc.details,
        hint=exc.hint,
    )


async def create_approval_chain(
    gateway: GatewayClient,
    *,
    expense_id: Optional[str] = None,
    report_id: Optional[str] = None,
) -> None:
    """Ask the gateway to build the approval chain for one expense or report."""
    try:
        await gateway.rpc(
            "create_approval_chain",
            {"p_expense_id": expense_id, "p_report_id": report_id},
        )
    except GatewayError as exc:
        friendly = friendly_submission_error(exc)
        if friendly is None:
            raise
        raise friendly from exc
