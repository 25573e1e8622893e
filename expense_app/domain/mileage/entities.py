from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

MileageCategory = Literal["business", "medical", "charity", "moving"]
MileageStatus = Literal["draft", "submitted", "approved", "rejected", "reimbursed"]
TrackingMethod = Literal["manual", "start_stop", "full_gps"]

MILEAGE_CATEGORIES: tuple[str, ...] = ("business", "medical", "charity", "moving")
MILEAGE_STATUSES: tuple[str, ...] = ("draft", "submitted", "approved", "rejected", "reimbursed")


@dataclass(frozen=True)
class MileageTrip:
    id: str
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    trip_date: Optional[str] = None
    origin_address: Optional[str] = None
    destination_address: Optional[str] = None
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    distance_miles: float = 0.0
    is_round_trip: bool = False
    # total_miles and reimbursement_amount are generated columns
    total_miles: float = 0.0
    tracking_method: Optional[str] = None
    start_timestamp: Optional[str] = None
    end_timestamp: Optional[str] = None
    irs_rate: float = 0.0
    reimbursement_amount: float = 0.0
    original_gps_distance: Optional[float] = None
    distance_manually_modified: bool = False
    distance_modified_at: Optional[str] = None
    distance_modification_reason: Optional[str] = None
    purpose: Optional[str] = None
    category: str = "business"
    department: Optional[str] = None
    project_code: Optional[str] = None
    expense_id: Optional[str] = None
    status: str = "draft"
    submitted_at: Optional[str] = None
    approved_at: Optional[str] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[str] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    reimbursed_at: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class IrsMileageRate:
    id: str
    category: str = "business"
    rate: float = 0.0
    effective_date: Optional[str] = None
    end_date: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class TripCoordinate:
    latitude: float
    longitude: float
    accuracy: float = 0.0
    recorded_at: Optional[str] = None
    id: Optional[str] = None
    trip_id: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class MileageRateCalculation:
    rate: float
    total_miles: float
    reimbursement_amount: float
    rate_effective_date: Optional[str]
    category: str


@dataclass(frozen=True)
class OrganizationMileageRate:
    rate: float = 0.0
    source: str = "irs"
    irs_rate: float = 0.0


@dataclass(frozen=True)
class MileageStats:
    total_trips: int = 0
    total_miles: float = 0.0
    total_reimbursement: float = 0.0
    trips_by_status: dict[str, int] = field(default_factory=dict)
    trips_by_category: dict[str, int] = field(default_factory=dict)


class CreateMileageTrip(BaseModel):
    trip_date: str
    origin_address: str = Field(min_length=1)
    destination_address: str = Field(min_length=1)
    distance_miles: float = Field(gt=0)
    is_round_trip: bool = False
    purpose: Optional[str] = None
    category: MileageCategory = "business"
    tracking_method: TrackingMethod = "manual"
    department: Optional[str] = None
    project_code: Optional[str] = None
    notes: Optional[str] = None
    origin_lat: Optional[float] = None
    origin_lng: Optional[float] = None
    destination_lat: Optional[float] = None
    destination_lng: Optional[float] = None
    original_gps_distance: Optional[float] = None
    distance_modification_reason: Optional[str] = None


class UpdateMileageTrip(BaseModel):
    trip_date: Optional[str] = None
    origin_address: Optional[str] = None
    destination_address: Optional[str] = None
    distance_miles: Optional[float] = Field(default=None, gt=0)
    is_round_trip: Optional[bool] = None
    purpose: Optional[str] = None
    category: Optional[MileageCategory] = None
    department: Optional[str] = None
    project_code: Optional[str] = None
    notes: Optional[str] = None


class MileageFilters(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: Union[MileageStatus, list[MileageStatus], None] = None
    category: Union[MileageCategory, list[MileageCategory], None] = None
    department: Optional[str] = None
    user_id: Optional[str] = None
    has_expense: Optional[bool] = None
    search_query: Optional[str] = None
