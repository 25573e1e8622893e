"""Shared plumbing for gateway-backed domain services."""
from __future__ import annotations

from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

from expense_app.core.errors import ExpenseAppError, PreconditionError
from expense_app.domain.context import SessionContext
from expense_app.domain.notifications import LoggingNotifier, Notifier
from expense_app.infrastructure.gateway import GatewayClient
from expense_app.observability.tracing import log_failure

R = TypeVar("R")
AsyncMethod = Callable[..., Awaitable[R]]


class DomainService:
    """Base for services that forward to the gateway on behalf of a session."""

    component = "domain"

    def __init__(
        self,
        gateway: GatewayClient,
        context: SessionContext,
        notifier: Notifier | None = None,
    ) -> None:
        self._gateway = gateway
        self._context = context
        self._notifier = notifier or LoggingNotifier()


def gateway_operation(failure_message: str, *, notify: bool = False) -> Callable[[AsyncMethod], AsyncMethod]:
    """Log (and optionally notify) failures of a service method, then re-raise.

    Precondition errors pass through untouched: nothing reached the gateway.
    """

    def decorator(fn: AsyncMethod) -> AsyncMethod:
        @wraps(fn)
        async def wrapped(self: DomainService, *args: Any, **kwargs: Any) -> Any:
            try:
                return await fn(self, *args, **kwargs)
            except PreconditionError:
                raise
            except ExpenseAppError as exc:
                log_failure(self.component, "service.failure", exc, operation=fn.__name__, summary=failure_message)
                if notify:
                    self._notifier.error(str(exc) or failure_message)
                raise

        return wrapped

    return decorator
