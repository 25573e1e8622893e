from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from expense_app.core.errors import GatewayError
from expense_app.domain.invitations import InvitationService, parse_invitation_csv
from expense_app.domain.invitations.entities import BulkInvitation, CreateInvitation
from expense_app.domain.invitations.service import EMAIL_FAILED_WARNING, invitation_link
from expense_app.domain.organizations.entities import UserRole

from tests.fixtures.gateway_stub import GatewayStub, body, row_not_visible, signed_in_context

INVITATION = {
    "id": "inv-1",
    "organization_id": "org-1",
    "email": "new.hire@example.com",
    "role": "employee",
    "token": "tok-1",
    "status": "pending",
}


class RecordingNotifier:
    def __init__(self) -> None:
        self.successes: list[str] = []
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)


def service_for(stub: GatewayStub, notifier: RecordingNotifier | None = None) -> InvitationService:
    return InvitationService(stub.client(), signed_in_context(role=UserRole.ADMIN), notifier or RecordingNotifier())


def test_csv_keeps_valid_rows_and_normalizes_case() -> None:
    content = "\n".join([
        "email,role,department,manager_email",
        "Ana@Example.com, Manager ,Sales,boss@example.com",
        "",
        "not-an-email,employee,,",
        "bo@example.com,intern,,",
        "cy@example.com,,,",
        "di@example.com,finance",
    ])

    invitations = parse_invitation_csv(content)

    assert [(i.email, i.role, i.department) for i in invitations] == [
        ("ana@example.com", UserRole.MANAGER, "Sales"),
        ("di@example.com", UserRole.FINANCE, None),
    ]


def test_csv_with_only_a_header_is_empty() -> None:
    assert parse_invitation_csv("email,role\n") == []


def test_invitation_link_carries_token() -> None:
    assert invitation_link("abc 123").endswith("/auth/accept-invitation?token=abc+123")


@pytest.mark.asyncio
async def test_create_stores_pending_invitation_and_sends_email() -> None:
    stub = (
        GatewayStub()
        .on("POST", "/rest/v1/invitations", [INVITATION])
        .on("POST", "/functions/v1/send-invitation-email", {"sent": True})
    )
    notifier = RecordingNotifier()

    invitation = await service_for(stub, notifier).create_invitation(
        CreateInvitation(email="New.Hire@Example.com", role=UserRole.EMPLOYEE)
    )

    sent = body(stub.calls_to("/rest/v1/invitations")[0])
    assert sent["email"] == "new.hire@example.com"
    assert sent["status"] == "pending"
    assert sent["role"] == "employee"
    assert sent["invited_by"] == "user-1"
    expires = datetime.fromisoformat(sent["expires_at"])
    assert timedelta(days=6) < expires - datetime.now(timezone.utc) <= timedelta(days=7)

    assert body(stub.calls_to("/functions/v1/send-invitation-email")[0]) == {
        "invitation_id": "inv-1",
        "email": "new.hire@example.com",
        "token": "tok-1",
        "organization_id": "org-1",
    }
    assert invitation.role is UserRole.EMPLOYEE
    assert notifier.warnings == []


@pytest.mark.asyncio
async def test_email_failure_keeps_invitation_and_warns() -> None:
    stub = (
        GatewayStub()
        .on("POST", "/rest/v1/invitations", [INVITATION])
        .on("POST", "/functions/v1/send-invitation-email", {"message": "smtp down"}, status=502)
    )
    notifier = RecordingNotifier()

    invitation = await service_for(stub, notifier).create_invitation(CreateInvitation(email="new.hire@example.com"))

    assert invitation.id == "inv-1"
    assert notifier.warnings == [EMAIL_FAILED_WARNING]
    assert notifier.errors == []


@pytest.mark.asyncio
async def test_duplicate_invitation_gets_readable_message() -> None:
    stub = GatewayStub().on(
        "POST", "/rest/v1/invitations", {"code": "23505", "message": "duplicate key value"}, status=409
    )
    notifier = RecordingNotifier()

    with pytest.raises(GatewayError, match="An invitation for this email already exists") as raised:
        await service_for(stub, notifier).create_invitation(CreateInvitation(email="dup@example.com"))

    assert raised.value.code == "23505"
    assert notifier.errors == ["An invitation for this email already exists"]
    assert stub.calls_to("/functions/v1/send-invitation-email") == []


@pytest.mark.asyncio
async def test_bulk_create_sends_one_email_per_invitation() -> None:
    second = {**INVITATION, "id": "inv-2", "email": "b@example.com", "token": "tok-2"}
    stub = (
        GatewayStub()
        .on("POST", "/rest/v1/invitations", [INVITATION, second])
        .on("POST", "/functions/v1/send-invitation-email", {"sent": True})
    )

    invitations = await service_for(stub).create_bulk_invitations(
        BulkInvitation(invitations=[CreateInvitation(email="new.hire@example.com"), CreateInvitation(email="b@example.com")])
    )

    assert [i.id for i in invitations] == ["inv-1", "inv-2"]
    assert len(body(stub.calls_to("/rest/v1/invitations")[0])) == 2
    assert len(stub.calls_to("/functions/v1/send-invitation-email")) == 2


@pytest.mark.asyncio
async def test_lookup_by_token_reads_first_row_or_none() -> None:
    found = GatewayStub().on("POST", "/rest/v1/rpc/get_invitation_by_token", [
        {**INVITATION, "organization_name": "Acme", "inviter_name": "Pat"},
    ])
    missing = GatewayStub().on("POST", "/rest/v1/rpc/get_invitation_by_token", reply=row_not_visible)
    empty = GatewayStub().on("POST", "/rest/v1/rpc/get_invitation_by_token", [])

    invitation = await service_for(found).get_invitation_by_token("tok-1")

    assert invitation.organization_name == "Acme"
    assert body(found.calls[0]) == {"p_token": "tok-1"}
    assert await service_for(missing).get_invitation_by_token("nope") is None
    assert await service_for(empty).get_invitation_by_token("nope") is None


@pytest.mark.asyncio
async def test_accept_joins_organization() -> None:
    stub = GatewayStub().on("POST", "/rest/v1/rpc/accept_invitation", {
        "id": "m-9", "organization_id": "org-2", "user_id": "user-1", "role": "manager",
    })
    notifier = RecordingNotifier()

    membership = await service_for(stub, notifier).accept_invitation("tok-1")

    assert membership.role is UserRole.MANAGER
    assert body(stub.calls[0]) == {"p_token": "tok-1", "p_user_id": "user-1"}
    assert notifier.successes == ["Successfully joined organization"]


@pytest.mark.asyncio
async def test_resend_extends_expiry_and_resends() -> None:
    stub = (
        GatewayStub()
        .on("PATCH", "/rest/v1/invitations", [INVITATION])
        .on("POST", "/functions/v1/send-invitation-email", {"sent": True})
    )

    await service_for(stub).resend_invitation("inv-1")

    assert set(body(stub.calls_to("/rest/v1/invitations")[0])) == {"expires_at"}
    assert len(stub.calls_to("/functions/v1/send-invitation-email")) == 1
