# --------------------------------
# Per-request session resolution
# --------------------------------
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

from expense_app.api.core.container import Container, get_container
from expense_app.core.errors import NoOrganizationError, NotAuthenticatedError
from expense_app.domain.auth import AuthService
from expense_app.domain.concurrency import gather_fail_fast
from expense_app.domain.context import OrganizationContext, SessionContext
from expense_app.domain.organizations.service import OrganizationService
from expense_app.infrastructure.gateway import GatewayClient

_BEARER = "bearer "


@dataclass
class RequestSession:
    gateway: GatewayClient
    context: SessionContext
    container: Container


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith(_BEARER):
        raise NotAuthenticatedError()
    token = authorization[len(_BEARER):].strip()
    if not token:
        raise NotAuthenticatedError()
    return token


async def get_session(
    authorization: Optional[str] = Header(default=None),
    x_organization_id: Optional[str] = Header(default=None),
    container: Container = Depends(get_container),
) -> RequestSession:
    """Resolve the caller and their active organization for this request."""
    token = _bearer_token(authorization)
    gateway = container.gateway(token)
    context = SessionContext()

    await AuthService(gateway, context, container.notifier).restore_session(token)
    if not x_organization_id:
        raise NoOrganizationError()

    organizations = OrganizationService(gateway, context, container.notifier)
    organization, membership = await gather_fail_fast(
        organizations.get_organization(x_organization_id),
        organizations.get_member(x_organization_id, context.require_user_id()),
    )
    if membership is None or not membership.is_active:
        raise HTTPException(status_code=403, detail="Not a member of this organization")
    context.organization.set(OrganizationContext(organization, membership))
    return RequestSession(gateway=gateway, context=context, container=container)
