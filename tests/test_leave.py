from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import update

from portal.core.exceptions import ConflictError, InsufficientBalanceError, ValidationError
from portal.leave.ledger import LeaveLedger, inclusive_day_count
from portal.leave.models import LeaveBalance, LeaveRequestStatus
from portal.leave.service import DEFAULT_LEAVE_TYPES, LeaveService

from conftest import TestingSessionLocal

CASUAL = "Casual leave"
SICK = "Sick leave"


@pytest.fixture
def ledger(db, events):
    return LeaveLedger(db, events)


@pytest.fixture
def service(db, clock, events):
    return LeaveService(db, clock=clock, events=events)


def test_inclusive_day_count():
    assert inclusive_day_count(date(2024, 3, 4), date(2024, 3, 4)) == 1
    assert inclusive_day_count(date(2024, 3, 4), date(2024, 3, 8)) == 5


def test_default_leave_types_are_seeded(service):
    names = [t.name for t in service.list_leave_types()]
    assert sorted(names) == sorted(t["name"] for t in DEFAULT_LEAVE_TYPES)


def test_unknown_balance_has_zero_entitlement(ledger):
    balance = ledger.get_balance("emp-1", CASUAL, 2024)
    assert balance.total_days == Decimal("0")
    assert balance.remaining_days == Decimal("0")
    assert not ledger.can_consume("emp-1", CASUAL, 2024, 1)


def test_exhausting_a_balance(service, ledger):
    ledger.grant("emp-1", CASUAL, 2024, 20)
    request = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 5))
    assert request.days_requested == Decimal("5")
    assert request.status == LeaveRequestStatus.PENDING

    service.finalize(request.id, "approved", approved_by="admin-1")
    balance = ledger.get_balance("emp-1", CASUAL, 2024)
    assert balance.used_days == Decimal("5")
    assert balance.remaining_days == Decimal("15")

    big = service.submit("emp-1", CASUAL, date(2024, 5, 1), date(2024, 5, 15))
    service.finalize(big.id, LeaveRequestStatus.APPROVED, approved_by="admin-1")
    assert ledger.get_balance("emp-1", CASUAL, 2024).remaining_days == Decimal("0")

    with pytest.raises(InsufficientBalanceError) as exc_info:
        service.submit("emp-1", CASUAL, date(2024, 6, 3), date(2024, 6, 3))
    assert exc_info.value.error_data["remaining_days"] == "0.00"


def test_submit_validations(service, ledger):
    ledger.grant("emp-1", CASUAL, 2024, 5)

    with pytest.raises(ValidationError):
        service.submit("emp-1", CASUAL, date(2024, 4, 5), date(2024, 4, 1))
    with pytest.raises(ValidationError):
        service.submit("emp-1", "Sabbatical", date(2024, 4, 1), date(2024, 4, 1))
    with pytest.raises(InsufficientBalanceError):
        service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 6))


def test_finalize_only_once(service, ledger):
    ledger.grant("emp-1", CASUAL, 2024, 10)
    request = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 2))
    service.finalize(request.id, "approved", approved_by="admin-1")

    with pytest.raises(ConflictError) as exc_info:
        service.finalize(request.id, "approved", approved_by="admin-2")
    assert exc_info.value.detail == "Leave request already finalized"

    # Not consumed a second time
    assert ledger.get_balance("emp-1", CASUAL, 2024).used_days == Decimal("2")


def test_rejection_does_not_consume(service, ledger, clock):
    ledger.grant("emp-1", CASUAL, 2024, 10)
    request = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 2))
    rejected = service.finalize(request.id, "rejected", admin_notes="Busy week", approved_by="admin-1")

    assert rejected.status == LeaveRequestStatus.REJECTED
    assert rejected.admin_notes == "Busy week"
    assert rejected.approved_at is None
    assert ledger.get_balance("emp-1", CASUAL, 2024).used_days == Decimal("0")

    with pytest.raises(ConflictError):
        service.finalize(request.id, "approved")


def test_pending_is_not_a_decision(service, ledger):
    ledger.grant("emp-1", CASUAL, 2024, 10)
    request = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 1))

    with pytest.raises(ValidationError):
        service.finalize(request.id, "pending")
    with pytest.raises(ValidationError):
        service.finalize(request.id, "maybe")


def test_balance_is_revalidated_at_approval(service, ledger):
    ledger.grant("emp-1", CASUAL, 2024, 8)
    first = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 5))
    second = service.submit("emp-1", CASUAL, date(2024, 5, 1), date(2024, 5, 5))

    service.finalize(first.id, "approved", approved_by="admin-1")
    with pytest.raises(InsufficientBalanceError) as exc_info:
        service.finalize(second.id, "approved", approved_by="admin-1")
    assert exc_info.value.error_data["remaining_days"] == "3.00"

    assert service.get_request(second.id).status == LeaveRequestStatus.PENDING
    assert ledger.get_balance("emp-1", CASUAL, 2024).remaining_days == Decimal("3")


def test_stale_balance_version_is_a_conflict(db, ledger, clock):
    ledger.grant("emp-1", CASUAL, 2024, 10)
    balance = ledger.find_balance("emp-1", CASUAL, 2024)

    assert balance.version == 1

    # Another writer moves the version on behind the loaded object's back
    db.execute(
        update(LeaveBalance)
        .where(LeaveBalance.id == balance.id)
        .values(version=LeaveBalance.version + 1)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(ConflictError):
        ledger.mark_consumed(balance, clock())


def test_delete_approved_request_restores_entitlement(service, ledger, events):
    ledger.grant("emp-1", CASUAL, 2024, 10)
    request = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 3))
    service.finalize(request.id, "approved", approved_by="admin-1")
    assert ledger.get_balance("emp-1", CASUAL, 2024).remaining_days == Decimal("7")

    service.delete(request.id)

    assert ledger.get_balance("emp-1", CASUAL, 2024).remaining_days == Decimal("10")
    assert events.received[-1].event_type == "leave_request.deleted"
    assert events.received[-1].payload["restored_days"] == "3.00"


def test_request_spanning_new_year_is_charged_to_start_year(service, ledger):
    ledger.grant("emp-1", CASUAL, 2024, 10)
    request = service.submit("emp-1", CASUAL, date(2024, 12, 30), date(2025, 1, 2))
    service.finalize(request.id, "approved", approved_by="admin-1")

    assert ledger.get_balance("emp-1", CASUAL, 2024).used_days == Decimal("4")
    assert ledger.get_balance("emp-1", CASUAL, 2025).used_days == Decimal("0")


def test_grant_validations(service, ledger):
    with pytest.raises(ValidationError):
        ledger.grant("emp-1", CASUAL, 2024, -1)
    with pytest.raises(ValidationError):
        ledger.grant("emp-1", "Sabbatical", 2024, 5)

    ledger.grant("emp-1", CASUAL, 2024, 10)
    request = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 4))
    service.finalize(request.id, "approved", approved_by="admin-1")

    with pytest.raises(ValidationError):
        ledger.grant("emp-1", CASUAL, 2024, 3)

    balance = ledger.grant("emp-1", CASUAL, 2024, 4)
    assert balance.remaining_days == Decimal("0")


def test_carry_forward(service, ledger):
    ledger.grant("emp-1", SICK, 2024, 10)
    request = service.submit("emp-1", SICK, date(2024, 2, 1), date(2024, 2, 3))
    service.finalize(request.id, "approved", approved_by="admin-1")

    balance = ledger.carry_forward("emp-1", SICK, 2024)
    assert balance.year == 2025
    assert balance.total_days == Decimal("17.00")

    with pytest.raises(ValidationError):
        ledger.carry_forward("emp-1", CASUAL, 2024)


def test_list_balances_and_requests(service, ledger):
    ledger.grant("emp-1", CASUAL, 2024, 10)
    ledger.grant("emp-1", SICK, 2024, 5)
    ledger.grant("emp-2", CASUAL, 2024, 10)
    service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 1))

    assert len(ledger.list_balances(employee_id="emp-1")) == 2
    assert len(ledger.list_balances(year=2024)) == 3
    assert len(service.list_requests(employee_id="emp-1", status=LeaveRequestStatus.PENDING)) == 1
    assert service.list_requests(employee_id="emp-2") == []


def test_workflow_publishes_changes(service, ledger, events):
    ledger.grant("emp-1", CASUAL, 2024, 10)
    request = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 1))
    service.finalize(request.id, "approved", approved_by="admin-1")

    assert [e.event_type for e in events.received] == [
        "leave_balance.granted",
        "leave_request.submitted",
        "leave_request.approved",
    ]


def test_ten_day_request_against_five_remaining_is_refused(service, ledger):
    ledger.grant("emp-1", CASUAL, 2024, 20)
    first = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 5))
    service.finalize(first.id, "approved", approved_by="admin-1")
    second = service.submit("emp-1", CASUAL, date(2024, 5, 1), date(2024, 5, 10))
    service.finalize(second.id, "approved", approved_by="admin-1")

    before = ledger.get_balance("emp-1", CASUAL, 2024)
    assert before.used_days == Decimal("15")
    assert before.remaining_days == Decimal("5")

    with pytest.raises(InsufficientBalanceError) as exc_info:
        service.submit("emp-1", CASUAL, date(2024, 6, 3), date(2024, 6, 12))
    assert exc_info.value.error_data["requested_days"] == "10.00"
    assert exc_info.value.error_data["remaining_days"] == "5.00"

    assert ledger.get_balance("emp-1", CASUAL, 2024) == before
    assert len(service.list_requests(employee_id="emp-1")) == 2


def test_losing_finalize_is_refused_before_the_ledger_is_read(service, ledger, clock, monkeypatch):
    ledger.grant("emp-1", CASUAL, 2024, 10)
    request = service.submit("emp-1", CASUAL, date(2024, 4, 1), date(2024, 4, 2))

    session_a, session_b = TestingSessionLocal(), TestingSessionLocal()
    try:
        admin_a = LeaveService(session_a, clock=clock)
        admin_b = LeaveService(session_b, clock=clock)

        # Admin B opened the request while it was still pending
        assert admin_b.get_request(request.id).status == LeaveRequestStatus.PENDING

        admin_a.finalize(request.id, "approved", approved_by="admin-a")

        ledger_reads = []
        for name in ("lock_balance", "get_balance", "used_days"):
            original = getattr(admin_b.ledger, name)

            def recorder(*args, _name=name, _original=original, **kwargs):
                ledger_reads.append((_name, args))
                return _original(*args, **kwargs)

            monkeypatch.setattr(admin_b.ledger, name, recorder)

        with pytest.raises(ConflictError) as exc_info:
            admin_b.finalize(request.id, "approved", approved_by="admin-b")

        assert exc_info.value.detail == "Leave request already finalized"
        assert ledger_reads == []

        final = admin_a.get_request(request.id)
        assert final.status == LeaveRequestStatus.APPROVED
        assert final.approved_by == "admin-a"
        assert ledger.get_balance("emp-1", CASUAL, 2024).used_days == Decimal("2")
    finally:
        session_a.close()
        session_b.close()
