"""Password sign-in and sign-out for a session."""
from __future__ import annotations

from typing import Any

from expense_app.core.errors import GatewayError, NotAuthenticatedError
from expense_app.domain.context import SessionUser
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.observability.tracing import log_event


def _session_user(user: dict[str, Any], access_token: str) -> SessionUser:
    if not user.get("id"):
        raise GatewayError("Gateway returned no user for the session", code="invalid_session")
    return SessionUser(id=user["id"], email=user.get("email"), access_token=access_token)


class AuthService(DomainService):
    component = "auth"

    @gateway_operation("Login failed")
    async def sign_in(self, email: str, password: str) -> SessionUser:
        payload = await self._gateway.sign_in_with_password(email, password)
        token = (payload or {}).get("access_token")
        if not token:
            raise GatewayError("Login failed: no access token returned", code="invalid_grant")
        user = _session_user(payload.get("user") or {}, token)

        self._gateway.set_access_token(token)
        self._context.clear()
        self._context.user.set(user)
        log_event("auth.signed_in", component=self.component, user_id=user.id)
        return user

    @gateway_operation("Session could not be restored")
    async def restore_session(self, access_token: str) -> SessionUser:
        """Adopt an existing access token after checking it with the gateway."""
        user = _session_user(await self._gateway.get_user(access_token) or {}, access_token)
        self._gateway.set_access_token(access_token)
        self._context.user.set(user)
        return user

    async def sign_out(self) -> None:
        """End the gateway session. Local state is cleared even if the call fails."""
        user = self._context.user.get()
        if user is None:
            raise NotAuthenticatedError()
        try:
            if user.access_token:
                await self._gateway.sign_out(user.access_token)
        finally:
            self._gateway.set_access_token(None)
            self._context.clear()
            log_event("auth.signed_out", component=self.component, user_id=user.id)
