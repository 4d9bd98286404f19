"""
Status derivation for documents whose status depends on the clock.

Handlers call these before every write so the stored status never lags the
dates it is derived from. Pure functions: no store access, `now` is passed in.
"""

from __future__ import annotations

import calendar
from datetime import datetime
from typing import Any, Dict, Optional

from estate_backend.models import BillStatus, LeaseStatus


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping the day (Jan 31 + 1 month = Feb 28/29)."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def lease_fully_signed(lease: Dict[str, Any]) -> bool:
    signatures = lease.get("signatures") or {}
    return bool((signatures.get("landlord") or {}).get("signed")) and bool(
        (signatures.get("tenant") or {}).get("signed")
    )


def derive_lease_status(lease: Dict[str, Any], now: datetime) -> LeaseStatus:
    """
    terminated is terminal; a lease past its end date is expired; a lease that
    has started and is either already active or signed by both parties is
    active; everything else is a draft.
    """
    current = LeaseStatus(lease.get("status") or LeaseStatus.draft.value)
    if current == LeaseStatus.terminated:
        return LeaseStatus.terminated

    end_date: Optional[datetime] = lease.get("endDate")
    if end_date is not None and end_date < now:
        return LeaseStatus.expired

    start_date: Optional[datetime] = lease.get("startDate")
    started = start_date is not None and start_date <= now
    if started and (current == LeaseStatus.active or lease_fully_signed(lease)):
        return LeaseStatus.active
    return LeaseStatus.draft


def derive_bill_status(bill: Dict[str, Any], now: datetime) -> BillStatus:
    if bill.get("status") == BillStatus.paid.value:
        return BillStatus.paid
    due_date: Optional[datetime] = bill.get("dueDate")
    if due_date is not None and due_date < now:
        return BillStatus.overdue
    return BillStatus.pending


def days_overdue(bill: Dict[str, Any], now: datetime) -> int:
    if derive_bill_status(bill, now) != BillStatus.overdue:
        return 0
    return max(0, (now - bill["dueDate"]).days)


def derive_subscription_active(subscription: Dict[str, Any], now: datetime) -> bool:
    """A subscription stays active only while its end date is in the future."""
    end_date: Optional[datetime] = subscription.get("endDate")
    return bool(subscription.get("isActive", True)) and end_date is not None and end_date > now
