"""
Library Module

Loan lifecycle and reminder dispatch for school libraries:
1. Newly overdue loans are flagged once and the borrower gets a warning
2. Loans due today get an info reminder
3. Loans due in 3 days get an early info reminder

API Endpoints:
- POST /library/check-overdue-books - Run one overdue sweep (service token)
- OPTIONS /library/check-overdue-books - Preflight/probe

Background Jobs (via APScheduler):
- run_overdue_sweep: Runs daily at the configured hour in the library timezone
"""

from .jobs import register_library_jobs
from .router import router

__all__ = ["router", "register_library_jobs"]
