"""Staff commission and tip allocation with a payout watermark."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .billing import ZERO, commission_for, distinct_staff, round2, split_tip
from .errors import ConflictError, ValidationError
from .extensions import db
from .models import (Appointment, AppointmentService, Payment, Staff, StaffEarning,
                     StaffPayout, as_utc, utc_now)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class EarningSnapshot:
    staff: Staff
    earning_start_date: datetime
    lines: list[AppointmentService] = field(default_factory=list)
    line_commissions: dict[int, Decimal] = field(default_factory=dict)
    total_booking: int = 0
    service_amount: Decimal = ZERO
    commission_earning: Decimal = ZERO
    tip_earning: Decimal = ZERO

    @property
    def staff_earning(self) -> Decimal:
        return round2(self.commission_earning + self.tip_earning)

    def to_dict(self) -> dict[str, object]:
        return {
            "staff_id": self.staff.staff_id,
            "staff_name": self.staff.full_name,
            "total_booking": self.total_booking,
            "service_amount": float(self.service_amount),
            "commission_earning": float(self.commission_earning),
            "tip_earning": float(self.tip_earning),
            "staff_earning": float(self.staff_earning),
            "earning_start_date": as_utc(self.earning_start_date).isoformat(),
        }


def watermark(staff_id: int, salon_id: int) -> datetime:
    row = StaffEarning.query.filter_by(staff_id=staff_id, salon_id=salon_id).first()
    return as_utc(row.earning_start_date) if row else EPOCH


def unpaid_service_lines(staff_id: int, salon_id: int, since: datetime) -> list[AppointmentService]:
    """Checked-out service lines of a staff member that no payout has covered yet.

    Both the watermark and the ``paid`` flag are applied, so a line paid in an
    earlier cycle never comes back even when its appointment is newer than the
    watermark.
    """
    return (
        AppointmentService.query.join(Appointment)
        .filter(
            AppointmentService.staff_id == staff_id,
            AppointmentService.paid.is_(False),
            Appointment.salon_id == salon_id,
            Appointment.status == "check-out",
            Appointment.created_at >= since,
        )
        .order_by(Appointment.appointment_id, AppointmentService.id)
        .all()
    )


def tip_earning_for(staff_id: int, appointments: list[Appointment]) -> Decimal:
    """Each payment's tip is split evenly across the distinct staff of its appointment."""
    if not appointments:
        return ZERO
    by_id = {appointment.appointment_id: appointment for appointment in appointments}
    payments = Payment.query.filter(Payment.appointment_id.in_(list(by_id))).all()

    total = ZERO
    for payment in payments:
        if not payment.tips:
            continue
        staff_ids = distinct_staff(line.staff_id for line in by_id[payment.appointment_id].services)
        if staff_id in staff_ids:
            total += split_tip(payment.tips, len(staff_ids))
    return round2(total)


def compute_earning(staff: Staff, salon_id: int) -> EarningSnapshot:
    """Recompute a staff member's unpaid earning from scratch."""
    since = watermark(staff.staff_id, salon_id)
    lines = unpaid_service_lines(staff.staff_id, salon_id, since)
    snapshot = EarningSnapshot(staff=staff, earning_start_date=since, lines=lines)

    plan = staff.assigned_commission
    commission_type = plan.commission_type if plan else None
    slots = plan.commission if plan else []

    appointments: dict[int, Appointment] = {}
    service_amount = ZERO
    commission = ZERO
    for line in lines:
        appointments.setdefault(line.appointment_id, line.appointment)
        service_amount += line.service_amount
        earned = commission_for(commission_type, slots, line.service_amount) if plan else ZERO
        snapshot.line_commissions[line.id] = earned
        commission += earned

    snapshot.total_booking = len(appointments)
    snapshot.service_amount = round2(service_amount)
    snapshot.commission_earning = round2(commission)
    snapshot.tip_earning = tip_earning_for(staff.staff_id, list(appointments.values()))
    return snapshot


def _earning_row(staff_id: int, salon_id: int) -> StaffEarning:
    row = StaffEarning.query.filter_by(staff_id=staff_id, salon_id=salon_id).first()
    if row is None:
        row = StaffEarning(staff_id=staff_id, salon_id=salon_id, earning_start_date=EPOCH)
        db.session.add(row)
    return row


def earning_row_lock(staff_id: int, salon_id: int):
    return (
        select(StaffEarning)
        .filter_by(staff_id=staff_id, salon_id=salon_id)
        .with_for_update()
    )


def lock_earning_row(staff_id: int, salon_id: int) -> StaffEarning:
    """Take a row lock on the staff member's earning row, creating it if needed.

    Concurrent payouts for the same staff member serialize on this lock, so the
    second one only sees lines the first left unpaid. This relies on a database
    with row locks; SQLite ignores FOR UPDATE and serializes writers instead.
    """
    row = db.session.execute(earning_row_lock(staff_id, salon_id)).scalar_one_or_none()
    if row is None:
        row = StaffEarning(staff_id=staff_id, salon_id=salon_id, earning_start_date=EPOCH)
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("A payout for this staff member is already in progress",
                                error="payout_in_progress") from None
    return row


def refresh_earning(staff: Staff, salon_id: int) -> EarningSnapshot:
    """Recompute, write per-line commissions and upsert the running snapshot.

    The caller owns the commit.
    """
    snapshot = compute_earning(staff, salon_id)
    for line in snapshot.lines:
        line.commission_earned = snapshot.line_commissions[line.id]

    row = _earning_row(staff.staff_id, salon_id)
    row.total_booking = snapshot.total_booking
    row.service_amount = snapshot.service_amount
    row.commission_earning = snapshot.commission_earning
    row.tip_earning = snapshot.tip_earning
    row.staff_earning = snapshot.staff_earning
    return snapshot


def pay_out(staff: Staff, salon_id: int, payment_method: str, description: str | None,
            salary: Decimal = ZERO) -> StaffPayout:
    """Lock the current earning into a payout, mark its lines paid and move the watermark.

    The earning row is locked before anything is read, and all writes land in
    one commit; on failure nothing is persisted.
    """
    row = lock_earning_row(staff.staff_id, salon_id)
    snapshot = compute_earning(staff, salon_id)
    total_pay = round2(snapshot.staff_earning + salary)
    if total_pay <= 0 and not snapshot.lines:
        raise ValidationError("Staff member has no unpaid earnings", error="nothing_to_pay")

    now = utc_now()
    try:
        payout = StaffPayout(
            staff_id=staff.staff_id,
            salon_id=salon_id,
            commission=snapshot.commission_earning,
            tips=snapshot.tip_earning,
            salary=salary,
            total_pay=total_pay,
            payment_method=payment_method.strip().lower(),
            description=description,
            date=now,
        )
        db.session.add(payout)

        for line in snapshot.lines:
            line.commission_earned = snapshot.line_commissions[line.id]
            line.paid = True

        row.total_booking = 0
        row.service_amount = ZERO
        row.commission_earning = ZERO
        row.tip_earning = ZERO
        row.staff_earning = ZERO
        row.earning_start_date = now

        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Paid out staff %s: commission=%s tips=%s salary=%s lines=%d",
        staff.staff_id, snapshot.commission_earning, snapshot.tip_earning, salary, len(snapshot.lines),
    )
    return payout
