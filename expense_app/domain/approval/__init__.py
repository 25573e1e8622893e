"""Approval workflows, queues and the client-side approval join."""
from .aggregation import aggregate_approval_details
from .display import can_approve, status_color, status_display, step_type_metadata
from .service import ApprovalService
