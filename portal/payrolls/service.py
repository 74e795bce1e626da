import logging
from typing import Any, Dict, List, Optional
from decimal import Decimal
from sqlalchemy.orm import Session

from portal.core.config import settings
from portal.core.events import ChangeEvent, EventBus
from portal.core.exceptions import ValidationError
from portal.core.service_base import BaseService
from portal.payrolls.calculator import net_pay, resolve_net_pay, to_money
from portal.payrolls.models import PayrollRecord, PayrollStatus

logger = logging.getLogger(__name__)

MONEY_FIELDS = ("gross_pay", "deductions", "overtime_pay", "bonus")


class PayrollService(BaseService):
    def __init__(self, db: Session, events: Optional[EventBus] = None):
        super().__init__(db, events)

    def compute_net_pay(self, gross: Decimal, overtime_pay: Decimal, bonus: Decimal, deductions: Decimal) -> Dict:
        """Break down the net pay formula for a suggested value."""
        return {
            "gross_pay": to_money(gross),
            "overtime_pay": to_money(overtime_pay),
            "bonus": to_money(bonus),
            "deductions": to_money(deductions),
            "net_pay": net_pay(gross, overtime_pay, bonus, deductions),
        }

    def create_payroll_record(self, payroll_data: Dict[str, Any]) -> PayrollRecord:
        """Create a payroll record; a supplied net pay must match the formula."""
        data = dict(payroll_data)
        self._validate_period(data["pay_period_start"], data["pay_period_end"])
        self._validate_amounts(data)

        data["net_pay"] = resolve_net_pay(
            data.get("net_pay"),
            data["gross_pay"],
            data.get("overtime_pay"),
            data.get("bonus"),
            data.get("deductions")
        )

        payroll = PayrollRecord(
            employee_id=data["employee_id"],
            pay_period_start=data["pay_period_start"],
            pay_period_end=data["pay_period_end"],
            gross_pay=to_money(data["gross_pay"]),
            deductions=to_money(data.get("deductions")),
            overtime_hours=to_money(data.get("overtime_hours")),
            overtime_pay=to_money(data.get("overtime_pay")),
            bonus=to_money(data.get("bonus")),
            net_pay=data["net_pay"],
            status=data.get("status") or PayrollStatus.PENDING,
            currency=(data.get("currency") or settings.default_currency).upper()
        )

        self.db.add(payroll)
        self.safe_commit("Error creating payroll record")
        self.db.refresh(payroll)

        self.log_service_action(
            "create", "PayrollRecord", str(payroll.id),
            {"employee_id": payroll.employee_id, "net_pay": str(payroll.net_pay)}
        )
        self._publish(payroll)
        return payroll

    def get_payroll(self, payroll_id) -> PayrollRecord:
        return self.get_or_404(PayrollRecord, payroll_id, "Payroll record")

    def get_employee_payrolls(self, employee_id: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[PayrollRecord]:
        """Payroll records, most recent pay period first."""
        query = self.db.query(PayrollRecord)
        if employee_id:
            query = query.filter(PayrollRecord.employee_id == employee_id)

        query = query.order_by(PayrollRecord.pay_period_start.desc())
        return self.paginate_query(query, skip, limit).all()

    def update_payroll(self, payroll_id, update_data: Dict[str, Any]) -> PayrollRecord:
        """
        Update a payroll record.

        The formula is re-checked on the merged record. If amounts change and
        no net pay is given, net pay is recomputed.
        """
        payroll = self.get_payroll(payroll_id)

        merged = {field: getattr(payroll, field) for field in MONEY_FIELDS}
        merged.update({k: v for k, v in update_data.items() if k in MONEY_FIELDS and v is not None})
        self._validate_amounts(merged)

        start = update_data.get("pay_period_start") or payroll.pay_period_start
        end = update_data.get("pay_period_end") or payroll.pay_period_end
        self._validate_period(start, end)

        new_net = resolve_net_pay(
            update_data.get("net_pay"),
            merged["gross_pay"],
            merged["overtime_pay"],
            merged["bonus"],
            merged["deductions"]
        )

        for field, value in update_data.items():
            if value is None or not hasattr(payroll, field):
                continue
            if field in MONEY_FIELDS or field == "overtime_hours":
                value = to_money(value)
            if field == "currency":
                value = value.upper()
            setattr(payroll, field, value)

        payroll.pay_period_start = start
        payroll.pay_period_end = end
        payroll.net_pay = new_net

        self.safe_commit("Error updating payroll record")
        self.db.refresh(payroll)

        self.log_service_action("update", "PayrollRecord", str(payroll.id), {"net_pay": str(payroll.net_pay)})
        self._publish(payroll)
        return payroll

    def _validate_period(self, start, end):
        if end < start:
            raise ValidationError(
                detail="Pay period end cannot be before its start",
                field="pay_period_end",
                value=end.isoformat()
            )

    def _validate_amounts(self, data: Dict[str, Any]):
        for field in MONEY_FIELDS:
            if data.get(field) is not None and to_money(data[field]) < 0:
                raise ValidationError(detail=f"{field} cannot be negative", field=field, value=str(data[field]))

    def _publish(self, payroll: PayrollRecord):
        self.events.publish(ChangeEvent(
            "payroll_record.saved",
            payroll.employee_id,
            str(payroll.id),
            {"status": payroll.status.value, "net_pay": str(payroll.net_pay)}
        ))
