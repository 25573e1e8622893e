"""Expense management service layer.

Every business rule that matters (workflow progression, policy resolution,
tax and currency math) runs inside the hosted gateway. This package owns the
orchestration around it:
- precondition checks (signed-in user, selected organization)
- request shaping for table queries and remote procedures
- the client-side approval join
- a handful of pure calculators (split totals, per diem, status display)
"""

__version__ = "1.0.0"
