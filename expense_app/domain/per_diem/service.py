"""Per diem rates, travel trips and meal-deduction math."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.concurrency import gather_fail_fast
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq
from expense_app.observability.tracing import log_event

from .entities import (
    MEAL_DEDUCTION_PERCENTAGES,
    TRAVEL_DAY_MIE_PERCENTAGE,
    CreatePerDiemRate,
    CreateTravelTrip,
    PerDiemLookup,
    PerDiemRate,
    TravelTrip,
    TravelTripDay,
    TripPerDiemCalculation,
    UpdatePerDiemRate,
    UpdateTravelTrip,
    UpdateTripDay,
)

RATES_TABLE = "per_diem_rates"
TRIPS_TABLE = "travel_trips"
DAYS_TABLE = "travel_trip_days"

TRIP_WITH_DAYS = "*, travel_trip_days(*)"
TRIP_WITH_DAYS_AND_USER = "*, travel_trip_days(*), user:users!user_id(id, full_name, email)"


def meal_deduction(mie_rate: float, meal: str) -> float:
    return mie_rate * MEAL_DEDUCTION_PERCENTAGES[meal]


def adjusted_mie(
    mie_rate: float,
    *,
    breakfast: bool = False,
    lunch: bool = False,
    dinner: bool = False,
    is_first_or_last_day: bool = False,
) -> float:
    """M&IE allowance for one day after travel-day and provided-meal reductions.

    Travel days get 75% of the full rate. Each provided meal then removes its
    share of the *full* rate. The result is never negative.
    """
    rate = mie_rate * TRAVEL_DAY_MIE_PERCENTAGE if is_first_or_last_day else mie_rate
    provided = (("breakfast", breakfast), ("lunch", lunch), ("dinner", dinner))
    share = sum(MEAL_DEDUCTION_PERCENTAGES[meal] for meal, flag in provided if flag)
    return max(0.0, rate - mie_rate * share)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PerDiemService(DomainService):
    component = "per_diem"

    # ------------------------------------------------------------------
    # Rates
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch per diem rates")
    async def get_rates(self) -> list[PerDiemRate]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            RATES_TABLE,
            filters=[eq("organization_id", organization_id)],
            order=Order("location"),
        )
        return from_rows(PerDiemRate, rows)

    @gateway_operation("Failed to look up per diem rate")
    async def lookup_rate(self, location: str, country_code: str = "US") -> Optional[PerDiemLookup]:
        organization_id = self._context.require_organization_id()
        payload = await self._gateway.rpc(
            "get_per_diem_rate",
            {"p_organization_id": organization_id, "p_location": location, "p_country_code": country_code},
        )
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        return from_row(PerDiemLookup, payload) if payload else None

    @gateway_operation("Failed to create per diem rate")
    async def create_rate(self, dto: CreatePerDiemRate) -> PerDiemRate:
        organization_id = self._context.require_organization_id()
        values = drop_none(dto.model_dump())
        values.setdefault("total_rate", dto.lodging_rate + dto.mie_rate)
        values["organization_id"] = organization_id
        rows = await self._gateway.insert(RATES_TABLE, values)
        log_event("per_diem.rate_created", component=self.component, location=dto.location)
        return from_row(PerDiemRate, rows[0])

    @gateway_operation("Failed to update per diem rate")
    async def update_rate(self, rate_id: str, dto: UpdatePerDiemRate) -> PerDiemRate:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(RATES_TABLE, values, filters=[eq("id", rate_id)])
        if not rows:
            raise ValidationFailedError("Per diem rate not found")
        return from_row(PerDiemRate, rows[0])

    @gateway_operation("Failed to delete per diem rate")
    async def delete_rate(self, rate_id: str) -> None:
        await self._gateway.delete(RATES_TABLE, filters=[eq("id", rate_id)])

    # ------------------------------------------------------------------
    # Trips
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch trips")
    async def get_my_trips(self) -> list[TravelTrip]:
        user_id = self._context.require_user_id()
        rows = await self._gateway.select(
            TRIPS_TABLE,
            columns=TRIP_WITH_DAYS,
            filters=[eq("user_id", user_id)],
            order=Order("start_date", ascending=False),
        )
        return from_rows(TravelTrip, rows)

    @gateway_operation("Failed to fetch trips")
    async def get_all_trips(self, status: Optional[str] = None, user_id: Optional[str] = None) -> list[TravelTrip]:
        organization_id = self._context.require_organization_id()
        query = [eq("organization_id", organization_id)]
        if status:
            query.append(eq("status", status))
        if user_id:
            query.append(eq("user_id", user_id))
        rows = await self._gateway.select(
            TRIPS_TABLE,
            columns=TRIP_WITH_DAYS_AND_USER,
            filters=query,
            order=Order("start_date", ascending=False),
        )
        return from_rows(TravelTrip, rows)

    @gateway_operation("Failed to fetch trip")
    async def get_trip(self, trip_id: str) -> TravelTrip:
        row = await self._gateway.select_one(TRIPS_TABLE, columns=TRIP_WITH_DAYS_AND_USER, filters=[eq("id", trip_id)])
        return from_row(TravelTrip, row)

    @gateway_operation("Failed to create trip")
    async def create_trip(self, dto: CreateTravelTrip) -> TravelTrip:
        user_id, organization_id = self._context.require_user_and_organization()
        if dto.end_date < dto.start_date:
            raise ValidationFailedError("Trip end date must not be before its start date")
        values = drop_none(dto.model_dump())
        values.update(organization_id=organization_id, user_id=user_id, status="planned")
        rows = await self._gateway.insert(TRIPS_TABLE, values, columns=TRIP_WITH_DAYS)
        trip = from_row(TravelTrip, rows[0])
        log_event("per_diem.trip_created", component=self.component, trip_id=trip.id)
        return trip

    @gateway_operation("Failed to update trip")
    async def update_trip(self, trip_id: str, dto: UpdateTravelTrip) -> TravelTrip:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(TRIPS_TABLE, values, filters=[eq("id", trip_id)], columns=TRIP_WITH_DAYS)
        if not rows:
            raise ValidationFailedError("Trip not found")
        return from_row(TravelTrip, rows[0])

    @gateway_operation("Failed to delete trip")
    async def delete_trip(self, trip_id: str) -> None:
        await self._gateway.delete(TRIPS_TABLE, filters=[eq("id", trip_id)])

    async def start_trip(self, trip_id: str) -> TravelTrip:
        return await self.update_trip(trip_id, UpdateTravelTrip(status="in_progress"))

    async def complete_trip(
        self,
        trip_id: str,
        actual_lodging: Optional[float] = None,
        actual_meals: Optional[float] = None,
    ) -> TravelTrip:
        return await self.update_trip(
            trip_id,
            UpdateTravelTrip(
                status="completed",
                actual_lodging_expense=actual_lodging,
                actual_meal_expense=actual_meals,
            ),
        )

    async def cancel_trip(self, trip_id: str) -> TravelTrip:
        return await self.update_trip(trip_id, UpdateTravelTrip(status="cancelled"))

    # ------------------------------------------------------------------
    # Trip days and totals
    # ------------------------------------------------------------------

    @gateway_operation("Failed to update trip day")
    async def update_trip_day(self, day_id: str, dto: UpdateTripDay) -> TravelTripDay:
        return await self._update_day(day_id, dto)

    @gateway_operation("Failed to update trip days")
    async def update_trip_days(self, days: dict[str, UpdateTripDay]) -> list[TravelTripDay]:
        return await gather_fail_fast(*(self._update_day(day_id, dto) for day_id, dto in days.items()))

    @gateway_operation("Failed to calculate trip per diem")
    async def calculate_trip_per_diem(self, trip_id: str) -> TripPerDiemCalculation:
        payload = await self._gateway.rpc("calculate_trip_per_diem", {"p_trip_id": trip_id})
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        return from_row(TripPerDiemCalculation, payload) if payload else TripPerDiemCalculation()

    async def _update_day(self, day_id: str, dto: UpdateTripDay) -> TravelTripDay:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(DAYS_TABLE, values, filters=[eq("id", day_id)])
        if not rows:
            raise ValidationFailedError("Trip day not found")
        return from_row(TravelTripDay, rows[0])
