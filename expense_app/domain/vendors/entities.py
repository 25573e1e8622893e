from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from expense_app.domain.rows import from_rows

VendorBusinessType = Literal["individual", "company", "government", "nonprofit", "other"]
VendorStatus = Literal["active", "inactive", "blocked"]
PaymentMethod = Literal["check", "ach", "wire", "card", "other"]

# IRS 1099 reporting threshold.
W9_THRESHOLD = 600


@dataclass(frozen=True)
class VendorAlias:
    id: str
    vendor_id: Optional[str] = None
    alias: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class VendorContact:
    id: str
    vendor_id: Optional[str] = None
    name: Optional[str] = None
    title: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    is_primary: bool = False
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class Vendor:
    id: str
    organization_id: Optional[str] = None
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    tax_id: Optional[str] = None
    business_type: Optional[str] = None
    default_category: Optional[str] = None
    tags: Optional[list[str]] = None
    payment_terms: Optional[str] = None
    preferred_payment_method: Optional[str] = None
    status: str = "active"
    is_preferred: bool = False
    is_w9_on_file: bool = False
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    aliases: list[VendorAlias] = field(default_factory=list)
    contacts: list[VendorContact] = field(default_factory=list)
    documents: list[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        object.__setattr__(self, "aliases", _embedded(VendorAlias, self.aliases))
        object.__setattr__(self, "contacts", _embedded(VendorContact, self.contacts))


def _embedded(cls, values):
    if not values:
        return []
    if isinstance(values[0], dict):
        return from_rows(cls, values)
    return list(values)


@dataclass(frozen=True)
class VendorStats:
    vendor_id: str
    vendor_name: Optional[str] = None
    expense_count: int = 0
    total_spent: float = 0.0
    avg_expense: float = 0.0
    last_expense_date: Optional[str] = None
    unique_users: int = 0
    top_category: Optional[str] = None


@dataclass(frozen=True)
class VendorNeedingW9:
    vendor_id: str
    vendor_name: Optional[str] = None
    total_paid: float = 0.0
    has_w9: bool = False


@dataclass(frozen=True)
class VendorSpendingSummary:
    vendor_id: str
    organization_id: Optional[str] = None
    vendor_name: Optional[str] = None
    display_name: Optional[str] = None
    default_category: Optional[str] = None
    status: Optional[str] = None
    is_preferred: bool = False
    expense_count: int = 0
    total_spent: float = 0.0
    avg_expense: float = 0.0
    last_expense_date: Optional[str] = None
    first_expense_date: Optional[str] = None
    unique_users: int = 0


class CreateVendor(BaseModel):
    name: str = Field(min_length=1)
    display_name: Optional[str] = None
    description: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    tax_id: Optional[str] = None
    business_type: Optional[VendorBusinessType] = None
    default_category: Optional[str] = None
    tags: Optional[list[str]] = None
    payment_terms: Optional[str] = None
    preferred_payment_method: Optional[PaymentMethod] = None
    is_preferred: Optional[bool] = None
    notes: Optional[str] = None


class UpdateVendor(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    display_name: Optional[str] = None
    description: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state_province: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    tax_id: Optional[str] = None
    business_type: Optional[VendorBusinessType] = None
    default_category: Optional[str] = None
    tags: Optional[list[str]] = None
    payment_terms: Optional[str] = None
    preferred_payment_method: Optional[PaymentMethod] = None
    status: Optional[VendorStatus] = None
    is_preferred: Optional[bool] = None
    is_w9_on_file: Optional[bool] = None
    notes: Optional[str] = None


class CreateVendorContact(BaseModel):
    vendor_id: str
    name: str = Field(min_length=1)
    title: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    is_primary: bool = False
    notes: Optional[str] = None


class UpdateVendorContact(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    title: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    is_primary: Optional[bool] = None
    notes: Optional[str] = None


class CreateVendorAlias(BaseModel):
    vendor_id: str
    alias: str = Field(min_length=1)


class VendorFilters(BaseModel):
    status: Optional[VendorStatus] = None
    is_preferred: Optional[bool] = None
    business_type: Optional[VendorBusinessType] = None
    search: Optional[str] = None
