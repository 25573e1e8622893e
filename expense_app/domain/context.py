"""Session state shared by every domain service.

State lives in explicit containers with a small get/set/subscribe surface.
Containers are created with the context, mutated only through their
setters and wiped on logout or organization switch.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from expense_app.core.errors import NoOrganizationError, NotAuthenticatedError
from expense_app.domain.delegation.entities import DelegationWithUser
from expense_app.domain.organizations.entities import (
    ROLE_HIERARCHY,
    Organization,
    OrganizationMember,
    UserRole,
)

T = TypeVar("T")

Listener = Callable[[Optional[T]], None]


class StateContainer(Generic[T]):
    """A single value with change notification.

    Writes are serialized; listeners run after the lock is released, in
    subscription order.
    """

    def __init__(self, initial: Optional[T] = None) -> None:
        self._value = initial
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def get(self) -> Optional[T]:
        return self._value

    def set(self, value: Optional[T]) -> None:
        with self._lock:
            self._value = value
            listeners = list(self._listeners)
        for listener in listeners:
            listener(value)

    def update(self, fn: Callable[[Optional[T]], Optional[T]]) -> Optional[T]:
        """Read-modify-write under the lock."""
        with self._lock:
            self._value = fn(self._value)
            value = self._value
            listeners = list(self._listeners)
        for listener in listeners:
            listener(value)
        return value

    def clear(self) -> None:
        self.set(None)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: Optional[str] = None
    access_token: Optional[str] = None


@dataclass(frozen=True)
class OrganizationContext:
    organization: Organization
    membership: OrganizationMember

    @property
    def id(self) -> str:
        return self.organization.id

    @property
    def role(self) -> UserRole:
        return self.membership.role


class SessionContext:
    """Who is signed in, which organization is active, and for whom they act."""

    def __init__(self) -> None:
        self.user: StateContainer[SessionUser] = StateContainer()
        self.organization: StateContainer[OrganizationContext] = StateContainer()
        self.acting_on_behalf_of: StateContainer[DelegationWithUser] = StateContainer()

    @property
    def user_id(self) -> Optional[str]:
        user = self.user.get()
        return user.id if user else None

    @property
    def organization_id(self) -> Optional[str]:
        org = self.organization.get()
        return org.id if org else None

    @property
    def role(self) -> Optional[UserRole]:
        org = self.organization.get()
        return org.role if org else None

    def require_user_id(self) -> str:
        user_id = self.user_id
        if not user_id:
            raise NotAuthenticatedError()
        return user_id

    def require_organization_id(self) -> str:
        organization_id = self.organization_id
        if not organization_id:
            raise NoOrganizationError()
        return organization_id

    def require_user_and_organization(self) -> tuple[str, str]:
        return self.require_user_id(), self.require_organization_id()

    def has_role(self, required: UserRole) -> bool:
        role = self.role
        if role is None:
            return False
        return ROLE_HIERARCHY.index(role) >= ROLE_HIERARCHY.index(UserRole(required))

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def is_finance_or_admin(self) -> bool:
        return self.role in (UserRole.FINANCE, UserRole.ADMIN)

    def is_manager_or_above(self) -> bool:
        return self.role in (UserRole.MANAGER, UserRole.FINANCE, UserRole.ADMIN)

    def clear(self) -> None:
        self.acting_on_behalf_of.clear()
        self.organization.clear()
        self.user.clear()
