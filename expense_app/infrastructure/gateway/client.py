"""HTTP adapter for the hosted relational gateway.

Why HTTP directly?
- Keeps the adapter isolated and explicit.
- Makes it easy to mock with httpx transports.

Endpoints used:
- ``/rest/v1/<table>`` for table reads and writes
- ``/rest/v1/rpc/<name>`` for remote procedures
- ``/functions/v1/<name>`` for edge functions
- ``/storage/v1`` for receipt files
- ``/auth/v1`` for password sign-in and token introspection
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

import httpx

from expense_app.config import Settings
from expense_app.core.errors import GatewayError
from expense_app.observability.tracing import Span, log_event, new_trace_id

from .query import Filter, Order

_OBJECT_MEDIA_TYPE = "application/vnd.pgrst.object+json"


@dataclass(frozen=True)
class GatewayConfig:
    """Connection settings for the gateway."""

    url: str
    anon_key: str
    timeout: float = 30.0

    @staticmethod
    def from_settings(settings: Settings) -> "GatewayConfig":
        return GatewayConfig(
            url=settings.gateway_url,
            anon_key=settings.gateway_anon_key,
            timeout=settings.request_timeout_seconds,
        )


class GatewayClient:
    """Async client for table queries, remote procedures and edge functions."""

    def __init__(self, config: GatewayConfig, client: httpx.AsyncClient | None = None) -> None:
        """Create a gateway client.

        Args:
            config: Gateway URL, anon key and timeout.
            client: Optional injected httpx client for testing / transport control.
        """
        self._cfg = config
        self._client = client
        self._access_token: str | None = None

    @property
    def base_url(self) -> str:
        return self._cfg.url.rstrip("/")

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Iterable[Filter] = (),
        order: Order | Sequence[Order] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        params = self._query_params(columns=columns, filters=filters, order=order)
        if limit is not None:
            params.append(("limit", str(limit)))
        if offset is not None:
            params.append(("offset", str(offset)))

        response = await self._request("GET", f"/rest/v1/{table}", params=params)
        return self._decode(response) or []

    async def select_one(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Iterable[Filter] = (),
    ) -> dict[str, Any]:
        """Fetch exactly one row.

        Raises:
            RowNotVisibleError: When no row matches (or row-level policies hide it).
            GatewayError: On any other gateway failure.
        """
        params = self._query_params(columns=columns, filters=filters)
        response = await self._request(
            "GET",
            f"/rest/v1/{table}",
            params=params,
            headers={"Accept": _OBJECT_MEDIA_TYPE},
        )
        return self._decode(response)

    async def insert(
        self,
        table: str,
        rows: dict[str, Any] | list[dict[str, Any]],
        *,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        response = await self._request(
            "POST",
            f"/rest/v1/{table}",
            params=[("select", columns)],
            json=rows,
            headers={"Prefer": "return=representation"},
        )
        return self._as_rows(self._decode(response))

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        *,
        filters: Iterable[Filter],
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        params = self._query_params(columns=columns, filters=filters)
        response = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=params,
            json=values,
            headers={"Prefer": "return=representation"},
        )
        return self._as_rows(self._decode(response))

    async def upsert(
        self,
        table: str,
        rows: dict[str, Any] | list[dict[str, Any]],
        *,
        on_conflict: str,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        """Insert, or merge into the row that collides on ``on_conflict`` columns."""
        response = await self._request(
            "POST",
            f"/rest/v1/{table}",
            params=[("select", columns), ("on_conflict", on_conflict)],
            json=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return self._as_rows(self._decode(response))

    async def delete(self, table: str, *, filters: Iterable[Filter]) -> None:
        params = self._query_params(columns=None, filters=filters)
        await self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params=params,
            headers={"Prefer": "return=minimal"},
        )

    # ------------------------------------------------------------------
    # Remote procedures and functions
    # ------------------------------------------------------------------

    async def rpc(self, name: str, args: dict[str, Any] | None = None) -> Any:
        """Invoke a named remote procedure with a flat argument record."""
        response = await self._request("POST", f"/rest/v1/rpc/{name}", json=args or {})
        return self._decode(response)

    async def invoke_function(self, name: str, body: dict[str, Any] | None = None) -> Any:
        response = await self._request("POST", f"/functions/v1/{name}", json=body or {})
        return self._decode(response)

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def upload_object(
        self,
        bucket: str,
        path: str,
        content: bytes,
        *,
        content_type: str,
    ) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"/storage/v1/object/{bucket}/{path}",
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "false"},
        )
        return self._decode(response) or {}

    async def create_signed_url(self, bucket: str, path: str, *, expires_in: int) -> str:
        response = await self._request(
            "POST",
            f"/storage/v1/object/sign/{bucket}/{path}",
            json={"expiresIn": expires_in},
        )
        payload = self._decode(response) or {}
        signed = payload.get("signedURL") or payload.get("signedUrl")
        if not signed:
            raise GatewayError("Gateway returned no signed URL", status_code=response.status_code)
        return f"{self.base_url}/storage/v1{signed}"

    async def remove_objects(self, bucket: str, paths: list[str]) -> None:
        await self._request("DELETE", f"/storage/v1/object/{bucket}", json={"prefixes": paths})

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params=[("grant_type", "password")],
            json={"email": email, "password": password},
        )
        return self._decode(response)

    async def get_user(self, access_token: str) -> dict[str, Any]:
        response = await self._request(
            "GET",
            "/auth/v1/user",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return self._decode(response)

    async def sign_out(self, access_token: str) -> None:
        await self._request(
            "POST",
            "/auth/v1/logout",
            headers={"Authorization": f"Bearer {access_token}"},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: list[tuple[str, str]] | None = None,
        json: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        request_headers = self._default_headers()
        if headers:
            request_headers.update(headers)

        kwargs: dict[str, Any] = {"params": params, "headers": request_headers, "timeout": self._cfg.timeout}
        if content is not None:
            kwargs["content"] = content
        elif json is not None:
            kwargs["json"] = json

        span = Span(name="gateway.request", trace_id=new_trace_id(), attributes={"method": method, "path": path})
        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            span.end()
            log_event("gateway.transport_error", trace_id=span.trace_id, span=span, level="error",
                      component="gateway", message=str(exc))
            raise GatewayError(f"Gateway unreachable: {exc}", code="transport_error") from exc

        span.end()
        span.attributes["status"] = response.status_code
        log_event("gateway.request", trace_id=span.trace_id, span=span, level="debug", component="gateway")

        if response.is_error:
            raise GatewayError.from_payload(self._error_payload(response), status_code=response.status_code)
        return response

    def _default_headers(self) -> dict[str, str]:
        token = self._access_token or self._cfg.anon_key
        return {
            "apikey": self._cfg.anon_key,
            "Authorization": f"Bearer {token}",
        }

    @staticmethod
    def _query_params(
        *,
        columns: str | None,
        filters: Iterable[Filter],
        order: Order | Sequence[Order] | None = None,
    ) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = []
        if columns is not None:
            params.append(("select", columns))
        for f in filters:
            params.append(f.render())
        if order is not None:
            orders = [order] if isinstance(order, Order) else list(order)
            params.append(("order", ",".join(o.render() for o in orders)))
        return params

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _as_rows(payload: Any) -> list[dict[str, Any]]:
        if payload is None:
            return []
        if isinstance(payload, list):
            return payload
        return [payload]

    @staticmethod
    def _error_payload(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text
