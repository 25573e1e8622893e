"""Mileage trips, IRS rate lookup and reimbursement math."""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Filter, Order, any_of, eq, gte, ilike, in_, is_, is_not, lte
from expense_app.observability.tracing import log_event

from .entities import (
    MILEAGE_CATEGORIES,
    MILEAGE_STATUSES,
    CreateMileageTrip,
    IrsMileageRate,
    MileageFilters,
    MileageRateCalculation,
    MileageStats,
    MileageTrip,
    OrganizationMileageRate,
    TripCoordinate,
    UpdateMileageTrip,
)

TRIPS_TABLE = "mileage_trips"
RATES_TABLE = "irs_mileage_rates"
COORDINATES_TABLE = "trip_coordinates"


def _cents(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def total_miles(distance_miles: float, is_round_trip: bool) -> float:
    return distance_miles * 2 if is_round_trip else distance_miles


def trip_stats(trips: Iterable[MileageTrip]) -> MileageStats:
    """Totals plus per-status and per-category counts. Unknown values are not counted."""
    trips = list(trips)
    by_status = dict.fromkeys(MILEAGE_STATUSES, 0)
    by_category = dict.fromkeys(MILEAGE_CATEGORIES, 0)
    for trip in trips:
        if trip.status in by_status:
            by_status[trip.status] += 1
        if trip.category in by_category:
            by_category[trip.category] += 1
    return MileageStats(
        total_trips=len(trips),
        total_miles=sum(trip.total_miles for trip in trips),
        total_reimbursement=sum(trip.reimbursement_amount for trip in trips),
        trips_by_status=by_status,
        trips_by_category=by_category,
    )


def trip_filters(filters: Optional[MileageFilters]) -> list[Filter]:
    if filters is None:
        return []
    query: list[Filter] = []
    if filters.start_date:
        query.append(gte("trip_date", filters.start_date))
    if filters.end_date:
        query.append(lte("trip_date", filters.end_date))
    for column in ("status", "category"):
        value = getattr(filters, column)
        if isinstance(value, list):
            if value:
                query.append(in_(column, value))
        elif value:
            query.append(eq(column, value))
    if filters.department:
        query.append(eq("department", filters.department))
    if filters.user_id:
        query.append(eq("user_id", filters.user_id))
    if filters.has_expense is not None:
        query.append(is_not("expense_id", None) if filters.has_expense else is_("expense_id", None))
    if filters.search_query:
        pattern = f"%{filters.search_query}%"
        query.append(
            any_of(
                ilike("origin_address", pattern),
                ilike("destination_address", pattern),
                ilike("purpose", pattern),
            )
        )
    return query


class MileageService(DomainService):
    component = "mileage"

    # ------------------------------------------------------------------
    # Trips
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch trips")
    async def get_my_trips(self, filters: Optional[MileageFilters] = None) -> list[MileageTrip]:
        user_id = self._context.require_user_id()
        rows = await self._gateway.select(
            TRIPS_TABLE,
            filters=[eq("user_id", user_id), *trip_filters(filters)],
            order=Order("trip_date", ascending=False),
        )
        return from_rows(MileageTrip, rows)

    @gateway_operation("Failed to fetch trips")
    async def get_all_trips(self, filters: Optional[MileageFilters] = None) -> list[MileageTrip]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            TRIPS_TABLE,
            filters=[eq("organization_id", organization_id), *trip_filters(filters)],
            order=Order("trip_date", ascending=False),
        )
        return from_rows(MileageTrip, rows)

    @gateway_operation("Failed to fetch trip")
    async def get_trip(self, trip_id: str) -> MileageTrip:
        row = await self._gateway.select_one(TRIPS_TABLE, filters=[eq("id", trip_id)])
        return from_row(MileageTrip, row)

    @gateway_operation("Failed to create trip")
    async def create_trip(self, dto: CreateMileageTrip) -> MileageTrip:
        user_id, organization_id = self._context.require_user_and_organization()
        rate = await self._find_rate(dto.category, dto.trip_date)
        values = drop_none(dto.model_dump())
        values.update(
            user_id=user_id,
            organization_id=organization_id,
            irs_rate=rate.rate,
            status="draft",
        )
        rows = await self._gateway.insert(TRIPS_TABLE, values)
        trip = from_row(MileageTrip, rows[0])
        log_event("mileage.trip_created", component=self.component, trip_id=trip.id, rate=rate.rate)
        return trip

    @gateway_operation("Failed to update trip")
    async def update_trip(self, trip_id: str, dto: UpdateMileageTrip) -> MileageTrip:
        values = drop_none(dto.model_dump())
        if dto.trip_date or dto.category:
            current = await self._gateway.select_one(
                TRIPS_TABLE, columns="trip_date, category", filters=[eq("id", trip_id)]
            )
            trip_date = dto.trip_date or current.get("trip_date")
            category = dto.category or current.get("category")
            if trip_date and category:
                values["irs_rate"] = (await self._find_rate(category, trip_date)).rate
        return await self._update(trip_id, values)

    @gateway_operation("Failed to delete trip")
    async def delete_trip(self, trip_id: str) -> None:
        await self._gateway.delete(TRIPS_TABLE, filters=[eq("id", trip_id)])

    @gateway_operation("Failed to fetch trip coordinates")
    async def get_trip_coordinates(self, trip_id: str) -> list[TripCoordinate]:
        rows = await self._gateway.select(
            COORDINATES_TABLE,
            filters=[eq("trip_id", trip_id)],
            order=Order("recorded_at"),
        )
        return from_rows(TripCoordinate, rows)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    @gateway_operation("Failed to submit trip")
    async def submit_trip(self, trip_id: str) -> MileageTrip:
        return await self._update(trip_id, {"status": "submitted", "submitted_at": _now()})

    @gateway_operation("Failed to approve trip")
    async def approve_trip(self, trip_id: str) -> MileageTrip:
        user_id = self._context.require_user_id()
        return await self._update(trip_id, {"status": "approved", "approved_at": _now(), "approved_by": user_id})

    @gateway_operation("Failed to reject trip")
    async def reject_trip(self, trip_id: str, reason: str) -> MileageTrip:
        user_id = self._context.require_user_id()
        return await self._update(
            trip_id,
            {"status": "rejected", "rejected_at": _now(), "rejected_by": user_id, "rejection_reason": reason},
        )

    @gateway_operation("Failed to mark trip reimbursed")
    async def mark_as_reimbursed(self, trip_id: str) -> MileageTrip:
        return await self._update(trip_id, {"status": "reimbursed", "reimbursed_at": _now()})

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    async def get_current_rate(self, category: str = "business") -> IrsMileageRate:
        return await self.get_rate(category, date.today().isoformat())

    @gateway_operation("Failed to fetch IRS mileage rate")
    async def get_rate(self, category: str, on: str) -> IrsMileageRate:
        return await self._find_rate(category, on)

    @gateway_operation("Failed to calculate reimbursement")
    async def calculate_reimbursement(
        self,
        distance_miles: float,
        is_round_trip: bool,
        category: str = "business",
        trip_date: Optional[str] = None,
    ) -> MileageRateCalculation:
        rate = await self._find_rate(category, trip_date or date.today().isoformat())
        miles = total_miles(distance_miles, is_round_trip)
        return MileageRateCalculation(
            rate=rate.rate,
            total_miles=miles,
            reimbursement_amount=_cents(miles * rate.rate),
            rate_effective_date=rate.effective_date,
            category=category,
        )

    @gateway_operation("Failed to fetch organization mileage rate")
    async def get_organization_mileage_rate(self, trip_date: Optional[str] = None) -> OrganizationMileageRate:
        """Custom organization rate when one is configured, the IRS rate otherwise."""
        organization_id = self._context.require_organization_id()
        payload = await self._gateway.rpc(
            "get_org_mileage_rate",
            {
                "p_organization_id": organization_id,
                "p_trip_date": trip_date or date.today().isoformat(),
                "p_category": "business",
            },
        )
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        return from_row(OrganizationMileageRate, payload) if payload else OrganizationMileageRate()

    # ------------------------------------------------------------------
    # Expenses and statistics
    # ------------------------------------------------------------------

    @gateway_operation("Failed to convert trip to expense")
    async def convert_trip_to_expense(self, trip_id: str) -> str:
        """Returns the new expense's id."""
        user_id = self._context.require_user_id()
        expense_id = await self._gateway.rpc("convert_trip_to_expense", {"p_trip_id": trip_id, "p_user_id": user_id})
        log_event("mileage.trip_converted", component=self.component, trip_id=trip_id, expense_id=expense_id)
        return expense_id

    @gateway_operation("Failed to fetch mileage statistics")
    async def get_stats(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> MileageStats:
        user_id = self._context.require_user_id()
        query = [eq("user_id", user_id)]
        if start_date:
            query.append(gte("trip_date", start_date))
        if end_date:
            query.append(lte("trip_date", end_date))
        rows = await self._gateway.select(TRIPS_TABLE, filters=query)
        return trip_stats(from_rows(MileageTrip, rows))

    async def _find_rate(self, category: str, on: str) -> IrsMileageRate:
        rows = await self._gateway.select(
            RATES_TABLE,
            filters=[
                eq("category", category),
                lte("effective_date", on),
                any_of(is_("end_date", None), gte("end_date", on)),
            ],
            order=Order("effective_date", ascending=False),
            limit=1,
        )
        if not rows:
            raise ValidationFailedError(f"No IRS rate found for {category} on {on}")
        return from_row(IrsMileageRate, rows[0])

    async def _update(self, trip_id: str, values: dict[str, Any]) -> MileageTrip:
        values["updated_at"] = _now()
        rows = await self._gateway.update(TRIPS_TABLE, values, filters=[eq("id", trip_id)])
        if not rows:
            raise ValidationFailedError("Trip not found")
        return from_row(MileageTrip, rows[0])
