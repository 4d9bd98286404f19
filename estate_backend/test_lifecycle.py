"""
estate_backend/test_lifecycle.py

Clock-derived statuses for leases, bills and subscriptions.

Run:
    pytest estate_backend/test_lifecycle.py -v
"""

from datetime import datetime, timedelta

from estate_backend.lifecycle import (
    days_overdue,
    derive_bill_status,
    derive_lease_status,
    derive_subscription_active,
    lease_fully_signed,
)
from estate_backend.models import BillStatus, LeaseStatus

NOW = datetime(2025, 3, 1, 9, 0, 0)
SIGNED = {"landlord": {"signed": True}, "tenant": {"signed": True}}


def lease(**fields):
    doc = {
        "status": "draft",
        "startDate": NOW - timedelta(days=1),
        "endDate": NOW + timedelta(days=30),
        "signatures": {"landlord": {"signed": False}, "tenant": {"signed": False}},
    }
    doc.update(fields)
    return doc


class TestLeaseStatus:

    def test_unsigned_started_lease_is_draft(self):
        assert derive_lease_status(lease(), NOW) == LeaseStatus.draft

    def test_fully_signed_started_lease_is_active(self):
        assert derive_lease_status(lease(signatures=SIGNED), NOW) == LeaseStatus.active

    def test_signed_but_not_started(self):
        doc = lease(signatures=SIGNED, startDate=NOW + timedelta(days=2))
        assert derive_lease_status(doc, NOW) == LeaseStatus.draft

    def test_past_end_date_expires(self):
        doc = lease(status="active", signatures=SIGNED, endDate=NOW - timedelta(seconds=1))
        assert derive_lease_status(doc, NOW) == LeaseStatus.expired

    def test_terminated_is_terminal(self):
        doc = lease(status="terminated", signatures=SIGNED, endDate=NOW - timedelta(days=5))
        assert derive_lease_status(doc, NOW) == LeaseStatus.terminated

    def test_active_stays_active(self):
        assert derive_lease_status(lease(status="active"), NOW) == LeaseStatus.active

    def test_one_signature_is_not_enough(self):
        assert not lease_fully_signed(lease(signatures={"landlord": {"signed": True}}))


class TestBillStatus:

    def test_future_due_is_pending(self):
        assert derive_bill_status({"status": "pending", "dueDate": NOW + timedelta(days=1)}, NOW) == BillStatus.pending

    def test_past_due_is_overdue(self):
        bill = {"status": "pending", "dueDate": NOW - timedelta(days=4)}
        assert derive_bill_status(bill, NOW) == BillStatus.overdue
        assert days_overdue(bill, NOW) == 4

    def test_paid_never_overdue(self):
        bill = {"status": "paid", "dueDate": NOW - timedelta(days=4)}
        assert derive_bill_status(bill, NOW) == BillStatus.paid
        assert days_overdue(bill, NOW) == 0


class TestSubscriptionActive:

    def test_future_end_date(self):
        assert derive_subscription_active({"isActive": True, "endDate": NOW + timedelta(days=1)}, NOW)

    def test_lapsed_end_date(self):
        assert not derive_subscription_active({"isActive": True, "endDate": NOW - timedelta(days=1)}, NOW)

    def test_already_inactive(self):
        assert not derive_subscription_active({"isActive": False, "endDate": NOW + timedelta(days=1)}, NOW)
