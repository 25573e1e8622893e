from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from expense_app.domain.rows import from_rows

TravelTripStatus = Literal["planned", "in_progress", "completed", "cancelled"]
Meal = Literal["breakfast", "lunch", "dinner"]

# Share of the full M&IE rate withheld when the meal is provided (GSA schedule).
MEAL_DEDUCTION_PERCENTAGES: dict[str, float] = {
    "breakfast": 0.20,
    "lunch": 0.30,
    "dinner": 0.50,
}
TRAVEL_DAY_MIE_PERCENTAGE = 0.75


@dataclass(frozen=True)
class PerDiemRate:
    id: str
    organization_id: Optional[str] = None
    location: Optional[str] = None
    country_code: str = "US"
    lodging_rate: float = 0.0
    mie_rate: float = 0.0
    total_rate: float = 0.0
    fiscal_year: Optional[int] = None
    effective_from: Optional[str] = None
    effective_until: Optional[str] = None
    is_standard_rate: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class PerDiemLookup:
    location: str
    lodging_rate: float = 0.0
    mie_rate: float = 0.0
    total_rate: float = 0.0
    fiscal_year: Optional[int] = None
    is_standard_rate: bool = False


@dataclass(frozen=True)
class TravelTripDay:
    id: str
    trip_id: Optional[str] = None
    travel_date: Optional[str] = None
    day_number: int = 1
    location: Optional[str] = None
    lodging_allowance: float = 0.0
    mie_allowance: float = 0.0
    is_first_day: bool = False
    is_last_day: bool = False
    breakfast_provided: bool = False
    lunch_provided: bool = False
    dinner_provided: bool = False
    adjusted_mie: Optional[float] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class TravelTrip:
    id: str
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    trip_name: Optional[str] = None
    description: Optional[str] = None
    destination_city: Optional[str] = None
    destination_state: Optional[str] = None
    destination_country: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    total_days: int = 0
    total_lodging_allowance: float = 0.0
    total_mie_allowance: float = 0.0
    total_per_diem: float = 0.0
    actual_lodging_expense: Optional[float] = None
    actual_meal_expense: Optional[float] = None
    status: str = "planned"
    report_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    travel_trip_days: list[TravelTripDay] = field(default_factory=list)
    user: Optional[dict[str, Any]] = None

    def __post_init__(self) -> None:
        days = self.travel_trip_days or []
        if days and isinstance(days[0], dict):
            days = from_rows(TravelTripDay, days)
        object.__setattr__(self, "travel_trip_days", list(days))


@dataclass(frozen=True)
class TripPerDiemCalculation:
    total_days: int = 0
    total_lodging: float = 0.0
    total_mie: float = 0.0
    total_per_diem: float = 0.0
    daily_breakdown: list[dict[str, Any]] = field(default_factory=list)


class CreatePerDiemRate(BaseModel):
    location: str = Field(min_length=1)
    country_code: str = "US"
    lodging_rate: float = Field(ge=0)
    mie_rate: float = Field(ge=0)
    total_rate: Optional[float] = Field(default=None, ge=0)
    fiscal_year: int
    effective_from: str
    effective_until: Optional[str] = None
    is_standard_rate: bool = False


class UpdatePerDiemRate(BaseModel):
    location: Optional[str] = None
    lodging_rate: Optional[float] = Field(default=None, ge=0)
    mie_rate: Optional[float] = Field(default=None, ge=0)
    total_rate: Optional[float] = Field(default=None, ge=0)
    effective_until: Optional[str] = None
    is_standard_rate: Optional[bool] = None


class CreateTravelTrip(BaseModel):
    trip_name: str = Field(min_length=1)
    description: Optional[str] = None
    destination_city: str
    destination_state: Optional[str] = None
    destination_country: str = "US"
    start_date: str
    end_date: str


class UpdateTravelTrip(BaseModel):
    trip_name: Optional[str] = None
    description: Optional[str] = None
    destination_city: Optional[str] = None
    destination_state: Optional[str] = None
    destination_country: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: Optional[TravelTripStatus] = None
    actual_lodging_expense: Optional[float] = None
    actual_meal_expense: Optional[float] = None


class UpdateTripDay(BaseModel):
    location: Optional[str] = None
    breakfast_provided: Optional[bool] = None
    lunch_provided: Optional[bool] = None
    dinner_provided: Optional[bool] = None
    notes: Optional[str] = None
