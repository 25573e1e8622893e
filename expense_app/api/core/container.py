# --------------------------------
# DI container
# --------------------------------
from functools import lru_cache
from typing import Optional

import httpx

from expense_app.config import Settings, get_settings
from expense_app.domain.notifications import LoggingNotifier, Notifier
from expense_app.infrastructure.gateway import GatewayClient, GatewayConfig


class Container:
    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self._config = GatewayConfig.from_settings(settings)
        self._http_client = http_client
        self._notifier = LoggingNotifier()

    def gateway(self, access_token: Optional[str] = None) -> GatewayClient:
        """A gateway client bound to one caller's token.

        Clients are per request; tokens are never shared between callers.
        """
        client = GatewayClient(self._config, client=self._http_client)
        client.set_access_token(access_token)
        return client

    @property
    def notifier(self) -> Notifier:
        return self._notifier


@lru_cache
def get_container():
    return Container(get_settings())
