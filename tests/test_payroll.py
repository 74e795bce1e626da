from datetime import date
from decimal import Decimal

import pytest

from portal.core.exceptions import ValidationError
from portal.payrolls.calculator import net_pay, resolve_net_pay, to_money, validate_net_pay
from portal.payrolls.models import PayrollStatus
from portal.payrolls.service import PayrollService


def test_net_pay_formula():
    assert net_pay(5000, 200, 100, 300) == Decimal("5000.00")
    assert net_pay("1234.565") == Decimal("1234.57")
    assert net_pay(100, deductions=150) == Decimal("-50.00")


def test_validate_net_pay_rejects_mismatch():
    assert validate_net_pay("5000", 5000, 200, 100, 300) == Decimal("5000.00")

    with pytest.raises(ValidationError) as exc_info:
        validate_net_pay(5300, 5000, 200, 100, 300)
    assert exc_info.value.error_data["expected_net_pay"] == "5000.00"
    assert exc_info.value.error_data["field"] == "net_pay"


def test_resolve_net_pay_fills_missing_value():
    assert resolve_net_pay(None, 1000, 0, 50, 25) == Decimal("1025.00")


def test_to_money_treats_none_as_zero():
    assert to_money(None) == Decimal("0.00")


@pytest.fixture
def service(db, events):
    return PayrollService(db, events)


def record_data(**overrides):
    data = {
        "employee_id": "emp-1",
        "pay_period_start": date(2024, 3, 1),
        "pay_period_end": date(2024, 3, 31),
        "gross_pay": Decimal("5000"),
        "overtime_pay": Decimal("200"),
        "bonus": Decimal("100"),
        "deductions": Decimal("300"),
    }
    data.update(overrides)
    return data


def test_create_record_fills_net_pay(service, events):
    payroll = service.create_payroll_record(record_data())

    assert payroll.net_pay == Decimal("5000.00")
    assert payroll.status == PayrollStatus.PENDING
    assert payroll.currency == "USD"
    assert events.received[-1].event_type == "payroll_record.saved"


def test_create_record_rejects_wrong_net_pay(service):
    with pytest.raises(ValidationError):
        service.create_payroll_record(record_data(net_pay=Decimal("5300")))

    assert service.get_employee_payrolls("emp-1") == []


def test_create_record_rejects_inverted_period_and_negative_amounts(service):
    with pytest.raises(ValidationError):
        service.create_payroll_record(record_data(pay_period_end=date(2024, 2, 1)))
    with pytest.raises(ValidationError):
        service.create_payroll_record(record_data(bonus=Decimal("-1")))


def test_update_revalidates_merged_record(service):
    payroll = service.create_payroll_record(record_data())

    updated = service.update_payroll(payroll.id, {"bonus": Decimal("400")})
    assert updated.net_pay == Decimal("5300.00")

    with pytest.raises(ValidationError):
        service.update_payroll(payroll.id, {"deductions": Decimal("0"), "net_pay": Decimal("5300")})

    updated = service.update_payroll(payroll.id, {"status": PayrollStatus.PAID, "currency": "eur"})
    assert updated.status == PayrollStatus.PAID
    assert updated.currency == "EUR"
    assert updated.net_pay == Decimal("5300.00")


def test_list_records_newest_period_first(service):
    service.create_payroll_record(record_data())
    service.create_payroll_record(record_data(pay_period_start=date(2024, 4, 1), pay_period_end=date(2024, 4, 30)))
    service.create_payroll_record(record_data(employee_id="emp-2"))

    records = service.get_employee_payrolls("emp-1")
    assert [r.pay_period_start for r in records] == [date(2024, 4, 1), date(2024, 3, 1)]
