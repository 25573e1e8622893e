from __future__ import annotations

import pytest

from expense_app.domain.approval import can_approve, status_color, status_display, step_type_metadata
from expense_app.domain.approval.entities import ApprovalRecord, ApprovalStatus, ApprovalStepType


@pytest.mark.parametrize(
    "approver, status, user, expected",
    [
        ("u1", ApprovalStatus.PENDING, "u1", True),
        ("u1", ApprovalStatus.AWAITING_PAYMENT, "u1", True),
        ("u1", ApprovalStatus.APPROVED, "u1", False),
        ("u1", ApprovalStatus.REJECTED, "u1", False),
        ("u1", ApprovalStatus.PAID, "u1", False),
        ("u1", ApprovalStatus.CANCELLED, "u1", False),
        ("u2", ApprovalStatus.PENDING, "u1", False),
        (None, ApprovalStatus.PENDING, "u1", False),
        ("u1", ApprovalStatus.PENDING, None, False),
    ],
)
def test_can_approve(approver, status, user, expected) -> None:
    record = ApprovalRecord(id="a1", current_approver_id=approver, status=status)
    assert can_approve(record, user) is expected


@pytest.mark.parametrize("status", list(ApprovalStatus))
def test_every_status_has_label_and_color(status: ApprovalStatus) -> None:
    assert status_display(status)
    assert status_color(status)
    assert status_display(status.value) == status_display(status)


def test_pending_and_payment_labels() -> None:
    assert status_display(ApprovalStatus.PENDING) == "Pending Approval"
    assert status_color(ApprovalStatus.REJECTED) == "danger"
    assert status_display("awaiting_payment") == "Awaiting Payment"


def test_unknown_status_is_rejected() -> None:
    with pytest.raises(ValueError):
        status_display("on_hold")


def test_step_types_offered_to_admins() -> None:
    metadata = step_type_metadata()
    assert [m.value for m in metadata] == [
        ApprovalStepType.MANAGER,
        ApprovalStepType.ROLE,
        ApprovalStepType.SPECIFIC_USER,
        ApprovalStepType.SPECIFIC_MANAGER,
        ApprovalStepType.MULTIPLE_USERS,
        ApprovalStepType.PAYMENT,
    ]
    payment = metadata[-1]
    assert payment.is_payment_step
    assert payment.allowed_roles == ("finance",)
