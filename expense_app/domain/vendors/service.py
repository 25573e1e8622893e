"""Vendor directory: vendors, aliases, contacts and spend statistics."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from expense_app.core.errors import ValidationFailedError
from expense_app.domain.rows import drop_none, from_row, from_rows
from expense_app.domain.service import DomainService, gateway_operation
from expense_app.infrastructure.gateway import Order, eq, ilike
from expense_app.observability.tracing import log_event

from .entities import (
    W9_THRESHOLD,
    CreateVendor,
    CreateVendorAlias,
    CreateVendorContact,
    UpdateVendor,
    UpdateVendorContact,
    Vendor,
    VendorAlias,
    VendorContact,
    VendorFilters,
    VendorNeedingW9,
    VendorSpendingSummary,
    VendorStats,
)

VENDORS_TABLE = "vendors"
ALIASES_TABLE = "vendor_aliases"
CONTACTS_TABLE = "vendor_contacts"
SPENDING_VIEW = "vendor_spending_summary"

VENDOR_WITH_RELATIONS = (
    "*, aliases:vendor_aliases(*), contacts:vendor_contacts(*), documents:vendor_documents(*)"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class VendorService(DomainService):
    component = "vendors"

    @gateway_operation("Failed to fetch vendors")
    async def get_vendors(self, filters: Optional[VendorFilters] = None) -> list[Vendor]:
        organization_id = self._context.require_organization_id()
        query = [eq("organization_id", organization_id)]
        if filters is not None:
            if filters.status:
                query.append(eq("status", filters.status))
            if filters.is_preferred is not None:
                query.append(eq("is_preferred", filters.is_preferred))
            if filters.business_type:
                query.append(eq("business_type", filters.business_type))
            if filters.search:
                query.append(ilike("name", f"%{filters.search}%"))
        rows = await self._gateway.select(
            VENDORS_TABLE,
            columns=VENDOR_WITH_RELATIONS,
            filters=query,
            order=Order("name"),
        )
        return from_rows(Vendor, rows)

    @gateway_operation("Failed to fetch vendor")
    async def get_vendor(self, vendor_id: str) -> Vendor:
        row = await self._gateway.select_one(
            VENDORS_TABLE,
            columns=VENDOR_WITH_RELATIONS,
            filters=[eq("id", vendor_id)],
        )
        return from_row(Vendor, row)

    @gateway_operation("Failed to create vendor")
    async def create_vendor(self, dto: CreateVendor) -> Vendor:
        organization_id = self._context.require_organization_id()
        values = drop_none(dto.model_dump())
        values.update(organization_id=organization_id, created_by=self._context.user_id, status="active")
        rows = await self._gateway.insert(VENDORS_TABLE, values)
        vendor = from_row(Vendor, rows[0])
        log_event("vendors.created", component=self.component, vendor_id=vendor.id)
        return vendor

    @gateway_operation("Failed to update vendor")
    async def update_vendor(self, vendor_id: str, dto: UpdateVendor) -> Vendor:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(VENDORS_TABLE, values, filters=[eq("id", vendor_id)])
        if not rows:
            raise ValidationFailedError("Vendor not found")
        log_event("vendors.updated", component=self.component, vendor_id=vendor_id)
        return from_row(Vendor, rows[0])

    @gateway_operation("Failed to delete vendor")
    async def delete_vendor(self, vendor_id: str) -> None:
        await self._gateway.delete(VENDORS_TABLE, filters=[eq("id", vendor_id)])
        log_event("vendors.deleted", component=self.component, vendor_id=vendor_id)

    async def update_vendor_status(self, vendor_id: str, status: str) -> Vendor:
        return await self.update_vendor(vendor_id, UpdateVendor(status=status))

    async def toggle_preferred(self, vendor_id: str, is_preferred: bool) -> Vendor:
        return await self.update_vendor(vendor_id, UpdateVendor(is_preferred=is_preferred))

    async def mark_w9_on_file(self, vendor_id: str, on_file: bool) -> Vendor:
        return await self.update_vendor(vendor_id, UpdateVendor(is_w9_on_file=on_file))

    # ------------------------------------------------------------------
    # Aliases and contacts
    # ------------------------------------------------------------------

    @gateway_operation("Failed to add vendor alias")
    async def add_alias(self, dto: CreateVendorAlias) -> VendorAlias:
        rows = await self._gateway.insert(ALIASES_TABLE, dto.model_dump())
        return from_row(VendorAlias, rows[0])

    @gateway_operation("Failed to remove vendor alias")
    async def remove_alias(self, alias_id: str) -> None:
        await self._gateway.delete(ALIASES_TABLE, filters=[eq("id", alias_id)])

    @gateway_operation("Failed to add vendor contact")
    async def add_contact(self, dto: CreateVendorContact) -> VendorContact:
        rows = await self._gateway.insert(CONTACTS_TABLE, drop_none(dto.model_dump()))
        return from_row(VendorContact, rows[0])

    @gateway_operation("Failed to update vendor contact")
    async def update_contact(self, contact_id: str, dto: UpdateVendorContact) -> VendorContact:
        values = drop_none(dto.model_dump())
        values["updated_at"] = _now()
        rows = await self._gateway.update(CONTACTS_TABLE, values, filters=[eq("id", contact_id)])
        if not rows:
            raise ValidationFailedError("Vendor contact not found")
        return from_row(VendorContact, rows[0])

    @gateway_operation("Failed to remove vendor contact")
    async def remove_contact(self, contact_id: str) -> None:
        await self._gateway.delete(CONTACTS_TABLE, filters=[eq("id", contact_id)])

    # ------------------------------------------------------------------
    # Matching and statistics
    # ------------------------------------------------------------------

    @gateway_operation("Failed to match vendor")
    async def match_vendor(self, merchant_name: str) -> Optional[str]:
        """Vendor id whose name or alias matches a receipt's merchant, if any."""
        organization_id = self._context.require_organization_id()
        vendor_id = await self._gateway.rpc(
            "match_vendor_for_merchant",
            {"p_organization_id": organization_id, "p_merchant_name": merchant_name},
        )
        return vendor_id or None

    @gateway_operation("Failed to fetch vendor stats")
    async def get_vendor_stats(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> list[VendorStats]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.rpc(
            "get_vendor_stats",
            {"p_organization_id": organization_id, "p_start_date": start_date, "p_end_date": end_date},
        )
        return from_rows(VendorStats, rows)

    @gateway_operation("Failed to fetch vendors needing W-9")
    async def get_vendors_needing_w9(self, threshold: float = W9_THRESHOLD) -> list[VendorNeedingW9]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.rpc(
            "get_vendors_needing_w9",
            {"p_organization_id": organization_id, "p_threshold": threshold},
        )
        return from_rows(VendorNeedingW9, rows)

    @gateway_operation("Failed to fetch vendor spending")
    async def get_spending_summary(self) -> list[VendorSpendingSummary]:
        organization_id = self._context.require_organization_id()
        rows = await self._gateway.select(
            SPENDING_VIEW,
            filters=[eq("organization_id", organization_id)],
            order=Order("total_spent", ascending=False),
        )
        return from_rows(VendorSpendingSummary, rows)
