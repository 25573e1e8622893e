"""Pure, network-free helpers derived from approval state."""
from __future__ import annotations

from typing import NamedTuple

from .entities import ApprovalRecord, ApprovalStatus, ApprovalStepType, StepTypeMetadata

ACTIONABLE_STATUSES = frozenset({ApprovalStatus.PENDING, ApprovalStatus.AWAITING_PAYMENT})


class StatusStyle(NamedTuple):
    label: str
    color: str


STATUS_STYLES: dict[ApprovalStatus, StatusStyle] = {
    ApprovalStatus.PENDING: StatusStyle("Pending Approval", "warning"),
    ApprovalStatus.APPROVED: StatusStyle("Approved", "success"),
    ApprovalStatus.AWAITING_PAYMENT: StatusStyle("Awaiting Payment", "info"),
    ApprovalStatus.REJECTED: StatusStyle("Rejected", "danger"),
    ApprovalStatus.CANCELLED: StatusStyle("Cancelled", "muted"),
    ApprovalStatus.PAID: StatusStyle("Paid", "primary"),
}


def can_approve(record: ApprovalRecord, current_user_id: str | None) -> bool:
    """True when the user is the current approver and the record still needs action."""
    if not current_user_id or record.current_approver_id != current_user_id:
        return False
    return record.status in ACTIONABLE_STATUSES


def status_style(status: ApprovalStatus | str) -> StatusStyle:
    """Label and color token for a status.

    Raises:
        ValueError: If ``status`` is not an ApprovalStatus value.
    """
    return STATUS_STYLES[ApprovalStatus(status)]


def status_display(status: ApprovalStatus | str) -> str:
    return status_style(status).label


def status_color(status: ApprovalStatus | str) -> str:
    return status_style(status).color


_STEP_TYPES: tuple[StepTypeMetadata, ...] = (
    StepTypeMetadata(
        value=ApprovalStepType.MANAGER,
        label="Submitter's Manager",
        description="Routes to the expense submitter's direct manager",
        icon="supervisor_account",
    ),
    StepTypeMetadata(
        value=ApprovalStepType.ROLE,
        label="User Role",
        description="Routes to any user with the specified role",
        icon="badge",
        requires_role=True,
    ),
    StepTypeMetadata(
        value=ApprovalStepType.SPECIFIC_USER,
        label="Specific User",
        description="Routes to a single named user",
        icon="person",
        requires_user=True,
    ),
    StepTypeMetadata(
        value=ApprovalStepType.SPECIFIC_MANAGER,
        label="Specific Manager",
        description="Routes to a named manager (not necessarily submitter's)",
        icon="manage_accounts",
        requires_user=True,
        allowed_roles=("manager", "admin"),
    ),
    StepTypeMetadata(
        value=ApprovalStepType.MULTIPLE_USERS,
        label="Multiple Approvers",
        description="Any of the selected users can approve",
        icon="groups",
        requires_multiple_users=True,
    ),
    StepTypeMetadata(
        value=ApprovalStepType.PAYMENT,
        label="Payment Step",
        description="Final payment processing by Finance",
        icon="payments",
        is_payment_step=True,
        allowed_roles=("finance",),
    ),
)


def step_type_metadata() -> list[StepTypeMetadata]:
    """Configurable step types, in the order they are offered to admins."""
    return list(_STEP_TYPES)
