"""Supported currencies, exchange rates and conversion."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from expense_app.domain.context import SessionContext, StateContainer
from expense_app.domain.notifications import Notifier
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import GatewayClient, Order, eq, lte
from expense_app.observability.tracing import log_event

from .entities import (
    ConversionResult,
    CreateExchangeRate,
    CurrencySummary,
    ExchangeRate,
    OrganizationCurrencySettings,
    SupportedCurrency,
    UpdateCurrencySettings,
)

CURRENCIES_TABLE = "supported_currencies"
RATES_TABLE = "currency_exchange_rates"
ORGANIZATIONS_TABLE = "organizations"

COMMON_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "CAD": "C$",
    "AUD": "A$",
    "JPY": "¥",
    "CHF": "CHF",
    "MXN": "MX$",
}
ZERO_DECIMAL_CURRENCIES = frozenset({"JPY"})


def currency_symbol(currency: str) -> str:
    return COMMON_SYMBOLS.get(currency.upper(), currency)


def format_amount(amount: float, currency: str) -> str:
    """Render an amount with its symbol, e.g. ``$1,234.50``; unknown codes get a code prefix."""
    code = currency.upper()
    places = 0 if code in ZERO_DECIMAL_CURRENCIES else 2
    sign = "-" if amount < 0 else ""
    if code in COMMON_SYMBOLS:
        return f"{sign}{COMMON_SYMBOLS[code]}{abs(amount):,.{places}f}"
    return f"{code} {amount:.2f}"


def _today() -> str:
    return date.today().isoformat()


class CurrencyService(DomainService):
    component = "currency"

    def __init__(
        self,
        gateway: GatewayClient,
        context: SessionContext,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(gateway, context, notifier)
        self._currencies: StateContainer[list[SupportedCurrency]] = StateContainer()
        self.base_currency: StateContainer[str] = StateContainer("USD")

    @gateway_operation("Failed to fetch currencies")
    async def get_supported_currencies(self) -> list[SupportedCurrency]:
        """Active currencies, fetched once and cached until ``clear_cache``."""
        cached = self._currencies.get()
        if cached is not None:
            return cached
        rows = await self._gateway.select(
            CURRENCIES_TABLE,
            filters=[eq("is_active", True)],
            order=Order("code"),
        )
        currencies = from_rows(SupportedCurrency, rows)
        self._currencies.set(currencies)
        return currencies

    def clear_cache(self) -> None:
        self._currencies.clear()

    @gateway_operation("Failed to fetch currency")
    async def get_currency(self, code: str) -> Optional[SupportedCurrency]:
        rows = await self._gateway.select(CURRENCIES_TABLE, filters=[eq("code", code)], limit=1)
        return from_row(SupportedCurrency, rows[0]) if rows else None

    @gateway_operation("Failed to fetch exchange rates")
    async def get_exchange_rates(self, on: Optional[str] = None) -> list[ExchangeRate]:
        """Latest known rate per currency pair as of ``on`` (default today)."""
        rows = await self._gateway.select(
            RATES_TABLE,
            filters=[lte("rate_date", on or _today())],
            order=Order("rate_date", ascending=False),
        )
        latest: dict[tuple[str, str], ExchangeRate] = {}
        for rate in from_rows(ExchangeRate, rows):
            latest.setdefault((rate.from_currency, rate.to_currency), rate)
        return list(latest.values())

    @gateway_operation("Failed to fetch exchange rate")
    async def get_exchange_rate(self, from_currency: str, to_currency: str, on: Optional[str] = None) -> float:
        if from_currency == to_currency:
            return 1.0
        rate = await self._gateway.rpc(
            "get_exchange_rate",
            {"p_from_currency": from_currency, "p_to_currency": to_currency, "p_date": on or _today()},
        )
        return float(rate)

    @gateway_operation("Failed to convert amount")
    async def convert_amount(
        self,
        amount: float,
        from_currency: str,
        to_currency: str,
        on: Optional[str] = None,
    ) -> ConversionResult:
        rate_date = on or _today()
        if from_currency == to_currency:
            return ConversionResult(amount, from_currency, amount, to_currency, 1.0, rate_date)
        converted = float(
            await self._gateway.rpc(
                "convert_currency",
                {
                    "p_amount": amount,
                    "p_from_currency": from_currency,
                    "p_to_currency": to_currency,
                    "p_date": rate_date,
                },
            )
        )
        rate = converted / amount if amount else 0.0
        return ConversionResult(amount, from_currency, converted, to_currency, rate, rate_date)

    @gateway_operation("Failed to set exchange rate")
    async def set_exchange_rate(self, dto: CreateExchangeRate) -> ExchangeRate:
        values = dto.model_dump()
        values["rate_date"] = dto.rate_date or _today()
        rows = await self._gateway.upsert(
            RATES_TABLE,
            values,
            on_conflict="from_currency,to_currency,rate_date",
        )
        log_event("currency.rate_set", component=self.component, pair=f"{dto.from_currency}/{dto.to_currency}")
        return from_row(ExchangeRate, rows[0])

    @gateway_operation("Failed to fetch currency settings")
    async def get_organization_settings(self) -> OrganizationCurrencySettings:
        organization_id = self._context.require_organization_id()
        row = await self._gateway.select_one(
            ORGANIZATIONS_TABLE,
            columns="base_currency, supported_currencies, auto_convert_currency",
            filters=[eq("id", organization_id)],
        )
        settings = OrganizationCurrencySettings(
            base_currency=row.get("base_currency") or "USD",
            supported_currencies=row.get("supported_currencies") or ["USD"],
            auto_convert_currency=row.get("auto_convert_currency", True) is not False,
        )
        self.base_currency.set(settings.base_currency)
        return settings

    @gateway_operation("Failed to update currency settings")
    async def update_organization_settings(self, dto: UpdateCurrencySettings) -> None:
        organization_id = self._context.require_organization_id()
        values = drop_none(dto.model_dump())
        values["updated_at"] = datetime.now(timezone.utc).isoformat()
        await self._gateway.update(ORGANIZATIONS_TABLE, values, filters=[eq("id", organization_id)], columns="id")
        if dto.base_currency:
            self.base_currency.set(dto.base_currency)
        log_event("currency.settings_updated", component=self.component)

    @gateway_operation("Failed to fetch currency summary")
    async def get_currency_summary(self) -> list[CurrencySummary]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.rpc("get_currency_summary", {"p_organization_id": organization_id})
        return from_rows(CurrencySummary, rows)
