"""Expenses, split line items and receipt attachments."""
from .service import ExpenseService
from .splitting import ExpenseSplittingService, validate_split_total
