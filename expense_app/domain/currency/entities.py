from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class SupportedCurrency:
    code: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    decimal_places: int = 2
    is_active: bool = True
    created_at: Optional[str] = None


@dataclass(frozen=True)
class ExchangeRate:
    id: str
    from_currency: Optional[str] = None
    to_currency: Optional[str] = None
    rate: float = 1.0
    source: Optional[str] = None
    rate_date: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class ConversionResult:
    original_amount: float
    original_currency: str
    converted_amount: float
    target_currency: str
    exchange_rate: float
    rate_date: str


@dataclass(frozen=True)
class OrganizationCurrencySettings:
    base_currency: str = "USD"
    supported_currencies: list[str] = field(default_factory=lambda: ["USD"])
    auto_convert_currency: bool = True


@dataclass(frozen=True)
class CurrencySummary:
    currency: str
    currency_name: Optional[str] = None
    currency_symbol: Optional[str] = None
    expense_count: int = 0
    total_original_amount: float = 0.0
    total_converted_amount: float = 0.0


class CreateExchangeRate(BaseModel):
    from_currency: str = Field(min_length=3, max_length=3)
    to_currency: str = Field(min_length=3, max_length=3)
    rate: float = Field(gt=0)
    source: Literal["manual", "api", "fixed"] = "manual"
    rate_date: Optional[str] = None


class UpdateCurrencySettings(BaseModel):
    base_currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    supported_currencies: Optional[list[str]] = None
    auto_convert_currency: Optional[bool] = None
