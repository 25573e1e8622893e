"""Duplicate expense detection.

Scoring happens in the ``find_duplicate_expenses`` procedure; this module
forwards searches and interprets the 0-100 similarity score.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from expense_app.domain.rows import from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq, is_not
from expense_app.observability.tracing import log_event

EXPENSES_TABLE = "expenses"
LIKELY_DUPLICATE_SCORE = 60
FLAGGED_SCORE = 60

# (minimum score, label, color), highest band first
SIMILARITY_BANDS: tuple[tuple[int, str, str], ...] = (
    (80, "Very High", "danger"),
    (60, "High", "warning"),
    (40, "Medium", "info"),
)


@dataclass(frozen=True)
class PotentialDuplicate:
    id: str
    merchant: Optional[str] = None
    amount: float = 0.0
    expense_date: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[str] = None
    similarity_score: float = 0.0


@dataclass(frozen=True)
class DuplicateStats:
    potential: int = 0
    confirmed: int = 0
    dismissed: int = 0


class DuplicateSearch(BaseModel):
    merchant: str
    amount: float
    expense_date: str
    exclude_id: Optional[str] = None
    date_tolerance_days: int = Field(default=3, ge=0)
    amount_tolerance: float = Field(default=0.01, ge=0)


def similarity_label(score: float) -> str:
    for threshold, label, _ in SIMILARITY_BANDS:
        if score >= threshold:
            return label
    return "Low"


def similarity_color(score: float) -> str:
    for threshold, _, color in SIMILARITY_BANDS:
        if score >= threshold:
            return color
    return "muted"


class DuplicateDetectionService(DomainService):
    component = "duplicates"

    @gateway_operation("Failed to check for duplicates")
    async def find_potential_duplicates(self, search: DuplicateSearch) -> list[PotentialDuplicate]:
        user_id, organization_id = self._context.require_user_and_organization()
        rows = await self._gateway.rpc(
            "find_duplicate_expenses",
            {
                "p_organization_id": organization_id,
                "p_user_id": user_id,
                "p_merchant": search.merchant,
                "p_amount": search.amount,
                "p_expense_date": search.expense_date,
                "p_exclude_id": search.exclude_id,
                "p_date_tolerance_days": search.date_tolerance_days,
                "p_amount_tolerance": search.amount_tolerance,
            },
        )
        return from_rows(PotentialDuplicate, rows)

    async def has_likely_duplicates(self, search: DuplicateSearch) -> bool:
        duplicates = await self.find_potential_duplicates(search)
        return any(d.similarity_score >= LIKELY_DUPLICATE_SCORE for d in duplicates)

    @gateway_operation("Failed to confirm duplicate", notify=True)
    async def confirm_duplicate(self, expense_id: str, duplicate_of_id: str) -> None:
        await self._gateway.rpc(
            "confirm_expense_duplicate",
            {"p_expense_id": expense_id, "p_duplicate_of_id": duplicate_of_id},
        )
        log_event("duplicates.confirmed", component=self.component,
                  expense_id=expense_id, duplicate_of_id=duplicate_of_id)

    @gateway_operation("Failed to dismiss duplicate", notify=True)
    async def dismiss_duplicate(self, expense_id: str) -> None:
        await self._gateway.rpc("dismiss_expense_duplicate", {"p_expense_id": expense_id})

    @gateway_operation("Failed to fetch flagged duplicates")
    async def get_potential_duplicates(self) -> list[PotentialDuplicate]:
        """Expenses already flagged as potential duplicates across the organization."""
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            EXPENSES_TABLE,
            columns="id, merchant, amount, expense_date, status, created_at",
            filters=[eq("organization_id", organization_id), eq("duplicate_status", "potential")],
            order=Order("created_at", ascending=False),
        )
        return [
            PotentialDuplicate(**{**duplicate.__dict__, "similarity_score": FLAGGED_SCORE})
            for duplicate in from_rows(PotentialDuplicate, rows)
        ]

    @gateway_operation("Failed to fetch duplicate stats")
    async def get_duplicate_stats(self) -> DuplicateStats:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            EXPENSES_TABLE,
            columns="duplicate_status",
            filters=[eq("organization_id", organization_id), is_not("duplicate_status", None)],
        )
        counts = Counter(row.get("duplicate_status") for row in rows)
        return DuplicateStats(
            potential=counts["potential"],
            confirmed=counts["confirmed"],
            dismissed=counts["dismissed"],
        )
