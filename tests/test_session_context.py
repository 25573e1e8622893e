from __future__ import annotations

import pytest

from expense_app.core.errors import NoOrganizationError, NotAuthenticatedError
from expense_app.domain.context import SessionContext, StateContainer
from expense_app.domain.organizations.entities import UserRole

from tests.fixtures.gateway_stub import signed_in_context


def test_require_user_id_without_session() -> None:
    with pytest.raises(NotAuthenticatedError, match="User not authenticated"):
        SessionContext().require_user_id()


def test_require_organization_without_selection() -> None:
    context = signed_in_context(organization_id=None)
    assert context.require_user_id() == "user-1"
    with pytest.raises(NoOrganizationError, match="No organization selected"):
        context.require_organization_id()


def test_role_hierarchy() -> None:
    finance = signed_in_context(role=UserRole.FINANCE)
    assert finance.has_role(UserRole.EMPLOYEE)
    assert finance.has_role(UserRole.FINANCE)
    assert not finance.has_role(UserRole.MANAGER)
    assert finance.is_finance_or_admin()
    assert not finance.is_manager_or_above()
    assert not SessionContext().has_role(UserRole.EMPLOYEE)


def test_clear_wipes_every_container() -> None:
    context = signed_in_context()
    context.clear()
    assert context.user_id is None
    assert context.organization_id is None
    assert context.acting_on_behalf_of.get() is None


def test_state_container_notifies_until_unsubscribed() -> None:
    container: StateContainer[int] = StateContainer(1)
    seen: list = []
    unsubscribe = container.subscribe(seen.append)

    container.set(2)
    assert container.update(lambda v: (v or 0) + 1) == 3
    unsubscribe()
    container.clear()

    assert seen == [2, 3]
    assert container.get() is None
