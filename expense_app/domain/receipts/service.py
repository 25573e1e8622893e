"""Receipt files: validation, storage upload, OCR and links to expenses."""
from __future__ import annotations

import base64
import re
import time
import uuid
from typing import Iterable, Optional

from expense_app.config import get_settings
from expense_app.core.errors import GatewayError, ValidationFailedError
from expense_app.domain.concurrency import gather_fail_fast
from expense_app.domain.rows import from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq
from expense_app.observability.tracing import log_event, log_failure

from .entities import (
    ExpenseReceiptLink,
    OcrConfidence,
    OcrResult,
    OcrStatus,
    Receipt,
    ReceiptUpload,
)

RECEIPTS_TABLE = "receipts"
LINKS_TABLE = "expense_receipts"
OCR_FUNCTION = "process-receipt"

BYTES_PER_MB = 1024 * 1024

FILE_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "image/jpeg": (
        b"\xff\xd8\xff\xe0",
        b"\xff\xd8\xff\xe1",
        b"\xff\xd8\xff\xe2",
        b"\xff\xd8\xff\xdb",
    ),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "application/pdf": (b"%PDF",),
}

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_DOT_RUNS = re.compile(r"\.{2,}")
_RECEIPT_EXTENSION = re.compile(r"\.(jpg|jpeg|png|pdf)$", re.IGNORECASE)
_CAMERA_PREFIX = re.compile(r"^(IMG|Screenshot|Photo|Scan|Receipt)[-_\s]*", re.IGNORECASE)


def validate_receipt_file(
    content_type: str,
    size: int,
    *,
    allowed_types: Optional[Iterable[str]] = None,
    max_bytes: Optional[int] = None,
) -> Optional[str]:
    """Return an error message for a disallowed type or oversized file, else None."""
    settings = get_settings()
    allowed = list(allowed_types if allowed_types is not None else settings.allowed_receipt_types)
    limit = max_bytes if max_bytes is not None else settings.max_receipt_bytes

    if content_type not in allowed:
        return f"Invalid file type. Allowed types: {', '.join(allowed)}"
    if size > limit:
        return f"File size exceeds {limit // BYTES_PER_MB}MB limit"
    return None


def matches_signature(content_type: str, content: bytes) -> bool:
    """Check the leading bytes against the known signatures for the type.

    Types without a known signature are accepted.
    """
    signatures = FILE_SIGNATURES.get(content_type)
    if not signatures:
        return True
    return any(content.startswith(signature) for signature in signatures)


def sanitize_file_name(name: str) -> str:
    cleaned = _UNSAFE_NAME_CHARS.sub("_", name)
    return _DOT_RUNS.sub(".", cleaned)[:255]


def merchant_from_file_name(name: str) -> str:
    base = _RECEIPT_EXTENSION.sub("", name)
    cleaned = _CAMERA_PREFIX.sub("", base).replace("-", " ").replace("_", " ").strip()
    return cleaned or "Unknown Merchant"


def fallback_ocr_result(file_name: str) -> OcrResult:
    """Low-confidence result used when text extraction is unavailable."""
    return OcrResult(
        merchant=merchant_from_file_name(file_name),
        confidence=OcrConfidence(merchant=0.3, overall=0.075),
    )


class ReceiptService(DomainService):
    component = "receipts"

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    @gateway_operation("Failed to upload receipt", notify=True)
    async def upload_receipt(self, file_name: str, content: bytes, content_type: str) -> ReceiptUpload:
        user_id, organization_id = self._context.require_user_and_organization()
        settings = get_settings()

        error = validate_receipt_file(content_type, len(content))
        if error is None and not matches_signature(content_type, content):
            error = "File content does not match file type. Possible security risk detected."
        if error:
            raise ValidationFailedError(error)

        safe_name = sanitize_file_name(file_name)
        path = f"{organization_id}/{user_id}/{int(time.time() * 1000)}_{uuid.uuid4()}_{safe_name}"
        await self._gateway.upload_object(settings.receipt_bucket, path, content, content_type=content_type)

        rows = await self._gateway.insert(
            RECEIPTS_TABLE,
            {
                "organization_id": organization_id,
                "user_id": user_id,
                "file_path": path,
                "file_name": safe_name,
                "file_type": content_type,
                "file_size": len(content),
                "ocr_status": OcrStatus.PENDING.value,
            },
        )
        receipt = from_row(Receipt, rows[0])
        signed_url = await self._gateway.create_signed_url(
            settings.receipt_bucket, path, expires_in=settings.signed_url_ttl_seconds
        )
        log_event("receipts.uploaded", component=self.component, receipt_id=receipt.id, size=receipt.file_size)
        return ReceiptUpload(receipt=receipt, signed_url=signed_url)

    @gateway_operation("Failed to fetch receipt")
    async def get_receipt(self, receipt_id: str) -> Receipt:
        row = await self._gateway.select_one(RECEIPTS_TABLE, filters=[eq("id", receipt_id)])
        return from_row(Receipt, row)

    @gateway_operation("Failed to fetch receipts")
    async def get_my_receipts(self) -> list[Receipt]:
        user_id, organization_id = self._context.require_user_and_organization()
        rows = await self._gateway.select(
            RECEIPTS_TABLE,
            filters=[eq("organization_id", organization_id), eq("user_id", user_id)],
            order=Order("created_at", ascending=False),
        )
        return from_rows(Receipt, rows)

    @gateway_operation("Failed to delete receipt", notify=True)
    async def delete_receipt(self, receipt_id: str) -> None:
        row = await self._gateway.select_one(RECEIPTS_TABLE, columns="file_path", filters=[eq("id", receipt_id)])
        await self._gateway.remove_objects(get_settings().receipt_bucket, [row["file_path"]])
        await self._gateway.delete(RECEIPTS_TABLE, filters=[eq("id", receipt_id)])

    async def get_signed_url(self, receipt: Receipt) -> str:
        settings = get_settings()
        return await self._gateway.create_signed_url(
            settings.receipt_bucket, receipt.file_path, expires_in=settings.signed_url_ttl_seconds
        )

    # ------------------------------------------------------------------
    # OCR
    # ------------------------------------------------------------------

    async def process_receipt(self, receipt: Receipt, content: bytes) -> OcrResult:
        """Run text extraction on a receipt image.

        Extraction failures never propagate; they yield the low-confidence
        fallback so the user can enter the fields by hand.
        """
        try:
            payload = await self._gateway.invoke_function(
                OCR_FUNCTION,
                {"image_base64": base64.b64encode(content).decode("ascii"), "receipt_id": receipt.id},
            )
        except GatewayError as exc:
            log_failure(self.component, "receipts.ocr_failed", exc, receipt_id=receipt.id)
            return fallback_ocr_result(receipt.file_name)
        if not isinstance(payload, dict):
            log_event("receipts.ocr_invalid_response", level="warning", component=self.component,
                      receipt_id=receipt.id)
            return fallback_ocr_result(receipt.file_name)
        return OcrResult.from_payload(payload)

    @gateway_operation("Failed to scan receipt")
    async def scan_receipt(self, receipt: Receipt, content: bytes) -> Receipt:
        """Extract fields and store them on the receipt row."""
        await self._set_ocr_fields(receipt.id, {"ocr_status": OcrStatus.PROCESSING.value})
        result = await self.process_receipt(receipt, content)
        status = OcrStatus.COMPLETED if result.confidence.overall > 0.1 else OcrStatus.FAILED
        row = await self._set_ocr_fields(
            receipt.id,
            {
                "ocr_status": status.value,
                "extracted_merchant": result.merchant,
                "extracted_amount": result.amount,
                "extracted_date": result.date,
                "extracted_tax": result.tax,
                "ocr_confidence": result.confidence.overall,
                "ocr_data": {"rawText": result.raw_text},
            },
        )
        if status is OcrStatus.COMPLETED:
            amount = f"${result.amount:.2f}" if result.amount else "unknown amount"
            self._notifier.success(f"Detected {result.merchant} for {amount}.")
        else:
            self._notifier.error("Could not extract receipt data. Please enter manually.")
        return from_row(Receipt, row) if row else receipt

    async def _set_ocr_fields(self, receipt_id: str, values: dict) -> Optional[dict]:
        rows = await self._gateway.update(RECEIPTS_TABLE, values, filters=[eq("id", receipt_id)])
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Expense links
    # ------------------------------------------------------------------

    @gateway_operation("Failed to fetch expense receipts")
    async def get_expense_receipts(self, expense_id: str) -> list[Receipt]:
        rows = await self._gateway.select(
            LINKS_TABLE,
            columns="*, receipt:receipts(*)",
            filters=[eq("expense_id", expense_id)],
            order=Order("display_order"),
        )
        return [from_row(Receipt, row["receipt"]) for row in rows if row.get("receipt")]

    @gateway_operation("Failed to attach receipt")
    async def attach_receipt(self, expense_id: str, receipt_id: str, is_primary: Optional[bool] = None) -> ExpenseReceiptLink:
        """Link a receipt to an expense at the end of its receipt list.

        The first receipt on an expense becomes primary unless told otherwise.
        """
        existing = await self._gateway.select(LINKS_TABLE, columns="receipt_id", filters=[eq("expense_id", expense_id)])
        display_order = len(existing)
        primary = display_order == 0 if is_primary is None else is_primary
        rows = await self._gateway.insert(
            LINKS_TABLE,
            {
                "expense_id": expense_id,
                "receipt_id": receipt_id,
                "display_order": display_order,
                "is_primary": primary,
            },
        )
        return from_row(ExpenseReceiptLink, rows[0])

    @gateway_operation("Failed to detach receipt")
    async def detach_receipt(self, expense_id: str, receipt_id: str) -> None:
        await self._gateway.delete(LINKS_TABLE, filters=[eq("expense_id", expense_id), eq("receipt_id", receipt_id)])

    @gateway_operation("Failed to reorder receipts")
    async def reorder_receipts(self, expense_id: str, receipt_ids: list[str]) -> None:
        await gather_fail_fast(
            *(
                self._gateway.update(
                    LINKS_TABLE,
                    {"display_order": index},
                    filters=[eq("expense_id", expense_id), eq("receipt_id", receipt_id)],
                )
                for index, receipt_id in enumerate(receipt_ids)
            )
        )

    @gateway_operation("Failed to set primary receipt")
    async def set_primary_receipt(self, expense_id: str, receipt_id: str) -> None:
        await self._gateway.update(
            LINKS_TABLE,
            {"is_primary": True},
            filters=[eq("expense_id", expense_id), eq("receipt_id", receipt_id)],
        )
