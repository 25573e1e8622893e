"""Tax rates, tax categories and tax reporting."""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Optional

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq
from expense_app.observability.tracing import log_event

from .entities import (
    CreateTaxCategory,
    CreateTaxRate,
    TaxCategory,
    TaxLookupResult,
    TaxRate,
    TaxReportFilters,
    TaxReportRow,
    TaxSummary,
    UpdateTaxCategory,
    UpdateTaxRate,
)

RATES_TABLE = "tax_rates"
CATEGORIES_TABLE = "tax_categories"


def _cents(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def format_tax_rate(rate: float) -> str:
    """``0.0725`` -> ``7.25%``."""
    return f"{rate * 100:.2f}%"


def tax_from_net(net_amount: float, rate: float) -> float:
    return _cents(net_amount * rate)


def net_from_gross(gross_amount: float, rate: float) -> float:
    return _cents(gross_amount / (1 + rate))


def tax_from_gross(gross_amount: float, rate: float) -> float:
    return _cents(gross_amount - net_from_gross(gross_amount, rate))


def summarize_tax_report(rows: list[TaxReportRow]) -> TaxSummary:
    """Fold a report grouped by tax type into totals."""
    by_type: dict[str, float] = {}
    for row in rows:
        by_type[row.group_key] = row.total_tax
    return TaxSummary(
        total_tax_paid=sum(row.total_tax for row in rows),
        total_recoverable=sum(row.recoverable_tax for row in rows),
        total_non_recoverable=sum(row.non_recoverable_tax for row in rows),
        by_type=by_type,
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TaxService(DomainService):
    component = "tax"

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch tax rates")
    async def get_tax_rates(self) -> list[TaxRate]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            RATES_TABLE,
            filters=[eq("organization_id", organization_id)],
            order=[Order("country_code"), Order("name")],
        )
        return from_rows(TaxRate, rows)

    @gateway_operation("Failed to fetch tax rate")
    async def get_tax_rate(self, rate_id: str) -> TaxRate:
        return from_row(TaxRate, await self._gateway.select_one(RATES_TABLE, filters=[eq("id", rate_id)]))

    @gateway_operation("Failed to create tax rate")
    async def create_tax_rate(self, dto: CreateTaxRate) -> TaxRate:
        organization_id = self._context.require_organization_id()
        values = drop_none(dto.model_dump())
        values["organization_id"] = organization_id
        rows = await self._gateway.insert(RATES_TABLE, values)
        log_event("tax.rate_created", component=self.component, name=dto.name)
        return from_row(TaxRate, rows[0])

    @gateway_operation("Failed to update tax rate")
    async def update_tax_rate(self, rate_id: str, dto: UpdateTaxRate) -> TaxRate:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(RATES_TABLE, values, filters=[eq("id", rate_id)])
        if not rows:
            raise ValidationFailedError("Tax rate not found")
        return from_row(TaxRate, rows[0])

    @gateway_operation("Failed to delete tax rate")
    async def delete_tax_rate(self, rate_id: str) -> None:
        await self._gateway.delete(RATES_TABLE, filters=[eq("id", rate_id)])

    @gateway_operation("Failed to look up tax rate")
    async def lookup_tax_rate(
        self,
        country_code: str,
        state_province: Optional[str] = None,
        tax_type: str = "sales_tax",
        on: Optional[date] = None,
    ) -> Optional[TaxLookupResult]:
        """The rate the gateway would apply for a jurisdiction and date, or None."""
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.rpc(
            "get_applicable_tax_rate",
            {
                "p_organization_id": organization_id,
                "p_country_code": country_code,
                "p_state_province": state_province,
                "p_tax_type": tax_type,
                "p_date": (on or date.today()).isoformat(),
            },
        )
        if not rows:
            return None
        return from_row(TaxLookupResult, rows[0] if isinstance(rows, list) else rows)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch tax categories")
    async def get_tax_categories(self) -> list[TaxCategory]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            CATEGORIES_TABLE,
            columns="*, default_rate:default_rate_id(*)",
            filters=[eq("organization_id", organization_id)],
            order=Order("name"),
        )
        return from_rows(TaxCategory, rows)

    @gateway_operation("Failed to create tax category")
    async def create_tax_category(self, dto: CreateTaxCategory) -> TaxCategory:
        organization_id = self._context.require_organization_id()
        values = drop_none(dto.model_dump())
        values["organization_id"] = organization_id
        rows = await self._gateway.insert(CATEGORIES_TABLE, values)
        return from_row(TaxCategory, rows[0])

    @gateway_operation("Failed to update tax category")
    async def update_tax_category(self, category_id: str, dto: UpdateTaxCategory) -> TaxCategory:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(CATEGORIES_TABLE, values, filters=[eq("id", category_id)])
        if not rows:
            raise ValidationFailedError("Tax category not found")
        return from_row(TaxCategory, rows[0])

    @gateway_operation("Failed to delete tax category")
    async def delete_tax_category(self, category_id: str) -> None:
        await self._gateway.delete(CATEGORIES_TABLE, filters=[eq("id", category_id)])

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch tax report")
    async def get_tax_report(self, filters: TaxReportFilters) -> list[TaxReportRow]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.rpc(
            "get_tax_report",
            {
                "p_organization_id": organization_id,
                "p_start_date": filters.start_date,
                "p_end_date": filters.end_date,
                "p_group_by": filters.group_by,
            },
        )
        return from_rows(TaxReportRow, rows)

    async def get_tax_summary(self, start_date: str, end_date: str) -> TaxSummary:
        rows = await self.get_tax_report(TaxReportFilters(start_date=start_date, end_date=end_date))
        return summarize_tax_report(rows)

    @gateway_operation("Failed to seed default tax rates")
    async def seed_default_rates(self) -> None:
        organization_id = self._context.require_organization_id()
        await self._gateway.rpc("seed_default_tax_rates", {"p_organization_id": organization_id})
        log_event("tax.defaults_seeded", component=self.component, organization_id=organization_id)
