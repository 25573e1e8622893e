from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

TaxType = Literal["sales_tax", "vat", "gst", "hst", "pst", "other", "exempt", "zero_rated"]
TaxReportGroupBy = Literal["tax_type", "jurisdiction", "category", "user"]

TAX_TYPE_LABELS: dict[str, str] = {
    "sales_tax": "Sales Tax",
    "vat": "VAT",
    "gst": "GST",
    "hst": "HST",
    "pst": "PST",
    "other": "Other",
    "exempt": "Exempt",
    "zero_rated": "Zero Rated",
}


@dataclass(frozen=True)
class TaxRate:
    id: str
    organization_id: Optional[str] = None
    name: Optional[str] = None
    country_code: Optional[str] = None
    state_province: Optional[str] = None
    tax_type: str = "sales_tax"
    rate: float = 0.0
    is_recoverable: bool = False
    is_compound: bool = False
    effective_from: Optional[str] = None
    effective_until: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class TaxCategory:
    id: str
    organization_id: Optional[str] = None
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None
    is_taxable: bool = True
    default_rate_id: Optional[str] = None
    vat_code: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    default_rate: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class TaxLookupResult:
    rate_id: str
    rate: float = 0.0
    is_recoverable: bool = False
    tax_name: Optional[str] = None


@dataclass(frozen=True)
class TaxReportRow:
    group_key: str
    total_gross: float = 0.0
    total_net: float = 0.0
    total_tax: float = 0.0
    recoverable_tax: float = 0.0
    non_recoverable_tax: float = 0.0
    expense_count: int = 0


@dataclass(frozen=True)
class TaxSummary:
    total_tax_paid: float = 0.0
    total_recoverable: float = 0.0
    total_non_recoverable: float = 0.0
    by_type: dict[str, float] = field(default_factory=dict)


class CreateTaxRate(BaseModel):
    name: str = Field(min_length=1)
    country_code: str = Field(min_length=2, max_length=2)
    state_province: Optional[str] = None
    tax_type: TaxType
    rate: float = Field(ge=0, le=1)
    is_recoverable: Optional[bool] = None
    is_compound: Optional[bool] = None
    effective_from: Optional[str] = None
    effective_until: Optional[str] = None


class UpdateTaxRate(BaseModel):
    name: Optional[str] = None
    rate: Optional[float] = Field(default=None, ge=0, le=1)
    is_recoverable: Optional[bool] = None
    is_compound: Optional[bool] = None
    effective_until: Optional[str] = None
    is_active: Optional[bool] = None


class CreateTaxCategory(BaseModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    description: Optional[str] = None
    is_taxable: Optional[bool] = None
    default_rate_id: Optional[str] = None
    vat_code: Optional[str] = None


class UpdateTaxCategory(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None
    is_taxable: Optional[bool] = None
    default_rate_id: Optional[str] = None
    vat_code: Optional[str] = None
    is_active: Optional[bool] = None


class TaxReportFilters(BaseModel):
    start_date: str
    end_date: str
    group_by: TaxReportGroupBy = "tax_type"
