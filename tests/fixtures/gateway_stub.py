# ------------------------------------------------------------------------------
# Recording stub transport for gateway calls
# ------------------------------------------------------------------------------
from __future__ import annotations

import json
from typing import Any, Callable, Optional, Union

import httpx
from httpx import MockTransport, Request, Response

from expense_app.domain.context import OrganizationContext, SessionContext, SessionUser
from expense_app.domain.organizations.entities import Organization, OrganizationMember, UserRole
from expense_app.infrastructure.gateway import GatewayClient, GatewayConfig

BASE_URL = "http://gateway.test"

Handler = Callable[[Request], Response]
Reply = Union[Response, Handler]


def json_reply(payload: Any, status: int = 200) -> Handler:
    def reply(request: Request) -> Response:
        return Response(status_code=status, json=payload)

    return reply


def row_not_visible(request: Optional[Request] = None) -> Response:
    return Response(
        status_code=406,
        json={
            "code": "PGRST116",
            "message": "JSON object requested, multiple (or no) rows returned",
            "details": "The result contains 0 rows",
            "hint": None,
        },
    )


class GatewayStub:
    """
    Stubbed gateway keyed by (method, path).

    Replies registered for the same key are served in order; the last one
    repeats. Every request is recorded, so tests can assert on what reached
    the wire (or that nothing did).
    """

    def __init__(self) -> None:
        self.calls: list[Request] = []
        self._routes: dict[tuple[str, str], list[Reply]] = {}
        self._prefixes: list[tuple[str, str, Reply]] = []

    def on(
        self,
        method: str,
        path: str,
        json: Any = None,
        *,
        status: int = 200,
        reply: Optional[Reply] = None,
    ) -> "GatewayStub":
        if reply is None:
            reply = json_reply(json, status)
        self._routes.setdefault((method.upper(), path), []).append(reply)
        return self

    def on_prefix(self, method: str, prefix: str, reply: Reply) -> "GatewayStub":
        """Serve every request whose path starts with ``prefix``."""
        self._prefixes.append((method.upper(), prefix, reply))
        return self

    def __call__(self, request: Request) -> Response:
        self.calls.append(request)
        replies = self._routes.get((request.method, request.url.path))
        if not replies:
            for method, prefix, reply in self._prefixes:
                if method == request.method and request.url.path.startswith(prefix):
                    return reply(request) if callable(reply) else reply
            return Response(
                status_code=404,
                json={"code": "STUB404", "message": f"Unhandled {request.method} {request.url.path}"},
            )
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        return reply(request) if callable(reply) else reply

    def calls_to(self, path: str, method: Optional[str] = None) -> list[Request]:
        return [
            call for call in self.calls
            if call.url.path == path and (method is None or call.method == method)
        ]

    def client(self) -> GatewayClient:
        http = httpx.AsyncClient(transport=MockTransport(self))
        return GatewayClient(GatewayConfig(url=BASE_URL, anon_key="anon-key"), client=http)


def body(request: Request) -> Any:
    return json.loads(request.content.decode("utf-8"))


def params(request: Request) -> dict[str, list[str]]:
    out: dict[str, list[str]] = {}
    for key, value in request.url.params.multi_items():
        out.setdefault(key, []).append(value)
    return out


def signed_in_context(
    user_id: str = "user-1",
    organization_id: Optional[str] = "org-1",
    role: UserRole = UserRole.EMPLOYEE,
) -> SessionContext:
    context = SessionContext()
    context.user.set(SessionUser(id=user_id, email=f"{user_id}@example.com", access_token="token-1"))
    if organization_id:
        context.organization.set(
            OrganizationContext(
                Organization(id=organization_id, name="Acme"),
                OrganizationMember(id=f"m-{user_id}", organization_id=organization_id, user_id=user_id, role=role),
            )
        )
    return context
