"""Dashboard aggregates built on top of recorded settlements.

Both reports read per-appointment figures through ``appointment_totals`` so
the discount pipeline is applied once, at checkout, and never re-derived here.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, fields
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Iterable

from sqlalchemy import func, or_

from .billing import ZERO, round2
from .errors import ValidationError
from .models import (Appointment, CustomerMembership, CustomerPackage, Payment, Staff,
                     as_utc, utc_now)

PAYMENT_BUCKETS = ("cash", "card", "upi")
DAILY_WINDOW_DAYS = 14


def day_key(value: datetime) -> str:
    """Calendar day of ``value`` in UTC; naive values are taken as UTC already."""
    return as_utc(value).astimezone(timezone.utc).strftime("%Y-%m-%d")


def bucket_method(method: str | None) -> str:
    """Map a free-form payment method onto cash/card/upi. Unknown methods count as cash."""
    lowered = (method or "").lower()
    for bucket in PAYMENT_BUCKETS:
        if bucket in lowered:
            return bucket
    return "cash"


def empty_breakdown() -> dict[str, Decimal]:
    return {bucket: ZERO for bucket in PAYMENT_BUCKETS}


def add_payment(breakdown: dict[str, Decimal], payment: Payment) -> None:
    if payment.payment_method == "Split":
        for split in payment.splits:
            breakdown[bucket_method(split.method)] += split.amount or ZERO
    else:
        breakdown[bucket_method(payment.payment_method)] += payment.final_total or ZERO


def payment_breakdown(payments: Iterable[Payment]) -> dict[str, Decimal]:
    breakdown = empty_breakdown()
    for payment in payments:
        add_payment(breakdown, payment)
    return breakdown


@dataclass
class AppointmentTotals:
    settled: bool = False
    services_count: int = 0
    service_amount: Decimal = ZERO
    product_amount: Decimal = ZERO
    discount_amount: Decimal = ZERO
    additional_charges: Decimal = ZERO
    tax_amount: Decimal = ZERO
    tips: Decimal = ZERO
    final_amount: Decimal = ZERO


def appointment_totals(appointment: Appointment, payments: list[Payment]) -> AppointmentTotals:
    """Per-appointment figures for reporting.

    With one or more payments the recorded settlement is authoritative. Without
    one only the raw service total is counted: no products, tax, tips or
    discounts are assumed for an unsettled appointment.
    """
    totals = AppointmentTotals(services_count=len(appointment.services))

    if payments:
        totals.settled = True
        for payment in payments:
            totals.service_amount += payment.service_amount
            totals.product_amount += payment.product_amount
            totals.discount_amount += payment.total_discount
            totals.additional_charges += payment.additional_charges
            totals.tax_amount += payment.tax_amount
            totals.tips += payment.tips
            totals.final_amount += payment.final_total
        return totals

    service_total = sum((line.service_amount for line in appointment.services), ZERO)
    totals.service_amount = service_total
    totals.final_amount = service_total
    return totals


def _payments_by_appointment(appointment_ids: list[int]) -> dict[int, list[Payment]]:
    grouped: dict[int, list[Payment]] = defaultdict(list)
    if appointment_ids:
        for payment in Payment.query.filter(Payment.appointment_id.in_(appointment_ids)).all():
            grouped[payment.appointment_id].append(payment)
    return grouped


def _as_floats(values: dict) -> dict:
    return {key: float(value) if isinstance(value, Decimal) else value for key, value in values.items()}


def _empty_day(day: str) -> dict[str, object]:
    row = {"date": day, "appointments_count": 0}
    row.update({f.name: f.default for f in fields(AppointmentTotals) if f.name != "settled"})
    row["payment_breakdown"] = empty_breakdown()
    return row


def daily_booking(salon_id: int, today: date | None = None) -> list[dict[str, object]]:
    """Per-UTC-day totals of checked-out appointments.

    The last ``DAILY_WINDOW_DAYS`` days up to ``today`` are always present,
    even with no activity; older days appear when they have appointments.
    """
    today = today or utc_now().date()
    appointments = Appointment.query.filter_by(salon_id=salon_id, status="check-out").all()
    payments = _payments_by_appointment([appointment.appointment_id for appointment in appointments])

    days: dict[str, dict[str, object]] = {}
    for appointment in appointments:
        moment = appointment.appointment_date or appointment.created_at
        if moment is None:
            continue
        key = day_key(moment)
        row = days.setdefault(key, _empty_day(key))

        appointment_payments = payments.get(appointment.appointment_id, [])
        totals = appointment_totals(appointment, appointment_payments)
        row["appointments_count"] += 1
        for name in ("services_count", "service_amount", "product_amount", "discount_amount",
                     "additional_charges", "tax_amount", "tips", "final_amount"):
            row[name] += getattr(totals, name)
        for payment in appointment_payments:
            add_payment(row["payment_breakdown"], payment)

    for offset in range(DAILY_WINDOW_DAYS):
        key = (today - timedelta(days=offset)).strftime("%Y-%m-%d")
        days.setdefault(key, _empty_day(key))

    result = []
    for key in sorted(days):
        row = _as_floats(days[key])
        row["payment_breakdown"] = _as_floats(row["payment_breakdown"])
        result.append(row)
    return result


def _parse_day(value: str, field: str) -> date:
    try:
        return datetime.fromisoformat(value.strip()).date()
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)", error="invalid_date") from None


def resolve_range(start_date: str | None, end_date: str | None,
                  today: date | None = None) -> tuple[datetime, datetime]:
    """Whole UTC days covered by a summary request.

    Both dates give an inclusive range, a start date alone gives that single
    day and no dates give today.
    """
    if start_date:
        first = _parse_day(start_date, "start_date")
        last = _parse_day(end_date, "end_date") if end_date else first
    else:
        first = last = today or utc_now().date()

    if last < first:
        raise ValidationError("end_date must not be before start_date", error="invalid_date")

    start = datetime.combine(first, time.min).replace(tzinfo=timezone.utc)
    end = datetime.combine(last, time.max).replace(tzinfo=timezone.utc)
    return start, end


def _staff_row(staff_id: int, names: dict[int, str]) -> dict[str, object]:
    return {
        "staff_id": staff_id,
        "staff_name": names.get(staff_id),
        "service_count": 0,
        "total_service_amount": ZERO,
        "total_product_amount": ZERO,
    }


def overall_summary(salon_id: int, start: datetime, end: datetime) -> dict[str, object]:
    appointment_moment = func.coalesce(Appointment.appointment_date, Appointment.created_at)
    in_window = Appointment.query.filter(
        Appointment.salon_id == salon_id,
        appointment_moment >= start,
        appointment_moment <= end,
    )

    relevant = in_window.filter(
        or_(Appointment.payment_status == "Paid", Appointment.status == "check-out")
    ).all()
    payments = _payments_by_appointment([appointment.appointment_id for appointment in relevant])

    totals = AppointmentTotals()
    staff_names = {staff.staff_id: staff.full_name for staff in Staff.query.filter_by(salon_id=salon_id)}
    staff_rows: dict[int, dict[str, object]] = {}

    for appointment in relevant:
        current = appointment_totals(appointment, payments.get(appointment.appointment_id, []))
        totals.service_amount += current.service_amount
        totals.product_amount += current.product_amount
        totals.discount_amount += current.discount_amount
        totals.additional_charges += current.additional_charges
        totals.tax_amount += current.tax_amount
        totals.tips += current.tips

        for line in appointment.services:
            if line.staff_id is None:
                continue
            row = staff_rows.setdefault(line.staff_id, _staff_row(line.staff_id, staff_names))
            row["service_count"] += 1
            row["total_service_amount"] += line.service_amount
        for line in appointment.products:
            if line.staff_id is None:
                continue
            row = staff_rows.setdefault(line.staff_id, _staff_row(line.staff_id, staff_names))
            row["total_product_amount"] += line.total_price

    breakdown = payment_breakdown(
        Payment.query.filter(
            Payment.salon_id == salon_id,
            Payment.created_at >= start,
            Payment.created_at <= end,
        ).all()
    )

    membership_sales = ZERO
    for membership in CustomerMembership.query.filter(
        CustomerMembership.salon_id == salon_id,
        CustomerMembership.created_at >= start,
        CustomerMembership.created_at <= end,
    ):
        membership_sales += membership.membership_amount
        breakdown[bucket_method(membership.payment_method)] += membership.membership_amount

    package_sales = ZERO
    for package in CustomerPackage.query.filter(
        CustomerPackage.salon_id == salon_id,
        CustomerPackage.created_at >= start,
        CustomerPackage.created_at <= end,
    ):
        package_sales += package.package_price
        breakdown[bucket_method(package.payment_method)] += package.package_price

    counts = {"open": 0, "completed": 0, "cancelled": 0}
    for appointment in in_window.all():
        if appointment.payment_status == "Paid" or appointment.status == "check-out":
            counts["completed"] += 1
        elif appointment.status == "cancelled":
            counts["cancelled"] += 1
        else:
            counts["open"] += 1
    counts["total"] = sum(counts.values())

    grand_total = round2(
        totals.service_amount + totals.product_amount + totals.additional_charges
        - totals.discount_amount + totals.tax_amount + totals.tips
        + membership_sales + package_sales
    )
    collected_total = round2(sum(breakdown.values(), ZERO))

    staff_list = []
    for row in staff_rows.values():
        row["total"] = row["total_service_amount"] + row["total_product_amount"]
        staff_list.append(_as_floats(row))
    total_row = {
        "staff_name": "Total",
        "service_count": sum(row["service_count"] for row in staff_rows.values()),
        "total_service_amount": sum((row["total_service_amount"] for row in staff_rows.values()), ZERO),
        "total_product_amount": sum((row["total_product_amount"] for row in staff_rows.values()), ZERO),
    }
    total_row["total"] = total_row["total_service_amount"] + total_row["total_product_amount"]
    staff_list.append(_as_floats(total_row))

    summary = _as_floats({
        "total_service_sales": totals.service_amount,
        "total_product_sales": totals.product_amount,
        "total_discount": totals.discount_amount,
        "total_additional_charges": totals.additional_charges,
        "total_tax": totals.tax_amount,
        "total_tips": totals.tips,
        "total_membership_sales": membership_sales,
        "total_package_sales": package_sales,
        "grand_total": grand_total,
        "collected_total": collected_total,
        "difference": grand_total - collected_total,
    })
    summary["payment_breakdown"] = _as_floats(breakdown)
    summary["appointment_counts"] = counts

    return {
        "range": {"start": start.isoformat(), "end": end.isoformat()},
        "summary": summary,
        "staff": staff_list,
    }
