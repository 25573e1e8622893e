"""Gateway adapter.

This package contains ONLY transport to the hosted backend:
- table queries and mutations
- remote procedure calls
- edge functions, object storage and auth endpoints

No business rules or precondition checks here. Those belong in the
domain services.
"""
from .client import GatewayClient, GatewayConfig
from .query import Filter, Order, any_of, eq, gt, gte, ilike, in_, is_, is_not, lt, lte, neq
