from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from expense_app.domain.rows import coerce_enum


class OcrStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Receipt:
    id: str
    organization_id: Optional[str] = None
    user_id: Optional[str] = None
    expense_id: Optional[str] = None
    file_path: str = ""
    file_name: str = ""
    file_type: Optional[str] = None
    file_size: int = 0
    ocr_status: OcrStatus = OcrStatus.PENDING
    ocr_data: Any = None
    ocr_confidence: Optional[float] = None
    extracted_merchant: Optional[str] = None
    extracted_amount: Optional[float] = None
    extracted_date: Optional[str] = None
    extracted_tax: Optional[float] = None
    extracted_line_items: Optional[list[dict[str, Any]]] = None
    suggest_split: Optional[bool] = None
    created_at: Optional[str] = None

    def __post_init__(self) -> None:
        coerce_enum(self, "ocr_status", OcrStatus)


@dataclass(frozen=True)
class ReceiptUpload:
    receipt: Receipt
    signed_url: str


@dataclass(frozen=True)
class OcrConfidence:
    merchant: float = 0.0
    amount: float = 0.0
    date: float = 0.0
    tax: float = 0.0
    overall: float = 0.0


@dataclass(frozen=True)
class OcrResult:
    merchant: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[str] = None
    tax: Optional[float] = None
    confidence: OcrConfidence = field(default_factory=OcrConfidence)
    raw_text: str = ""

    @staticmethod
    def from_payload(payload: dict[str, Any]) -> "OcrResult":
        confidence = payload.get("confidence") or {}
        return OcrResult(
            merchant=payload.get("merchant"),
            amount=payload.get("amount"),
            date=payload.get("date"),
            tax=payload.get("tax"),
            confidence=OcrConfidence(**{k: v for k, v in confidence.items() if k in OcrConfidence.__dataclass_fields__}),
            raw_text=payload.get("rawText") or payload.get("raw_text") or "",
        )


@dataclass(frozen=True)
class ExpenseReceiptLink:
    expense_id: str
    receipt_id: str
    display_order: int = 0
    is_primary: bool = False
    receipt: Optional[dict[str, Any]] = None
