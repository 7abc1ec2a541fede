"""Tests for reporting helpers and the daily booking summary."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from salondesk.errors import ValidationError
from salondesk.models import Payment, PaymentSplit
from salondesk.reports import (appointment_totals, bucket_method, daily_booking, day_key,
                               payment_breakdown, resolve_range)

IST = timezone(timedelta(hours=5, minutes=30))


def test_unknown_payment_methods_fall_back_to_cash() -> None:
    assert bucket_method("Paytm") == "cash"
    assert bucket_method(None) == "cash"
    assert bucket_method("UPI") == "upi"
    assert bucket_method("Credit Card") == "card"
    assert bucket_method("CASH") == "cash"


def test_day_key_uses_utc_calendar_day() -> None:
    assert day_key(datetime(2026, 3, 1, 23, 59)) == "2026-03-01"
    assert day_key(datetime(2026, 3, 2, 0, 30, tzinfo=IST)) == "2026-03-01"
    assert day_key(datetime(2026, 3, 2, 0, 0, tzinfo=timezone.utc)) == "2026-03-02"


def test_split_payment_breakdown_buckets_unknown_methods_into_cash(app) -> None:
    split = Payment(
        payment_method="Split",
        final_total=Decimal("550"),
        splits=[
            PaymentSplit(method="cash", amount=Decimal("300")),
            PaymentSplit(method="card", amount=Decimal("200")),
            PaymentSplit(method="Paytm", amount=Decimal("50")),
        ],
    )
    single = Payment(payment_method="UPI", final_total=Decimal("120"))

    breakdown = payment_breakdown([split, single])

    assert breakdown == {"cash": Decimal("350"), "card": Decimal("200"), "upi": Decimal("120")}


def test_resolve_range_defaults_to_today() -> None:
    start, end = resolve_range(None, None, today=date(2026, 5, 4))

    assert start == datetime(2026, 5, 4, tzinfo=timezone.utc)
    assert end.date() == date(2026, 5, 4)
    assert end.hour == 23 and end.minute == 59


def test_resolve_range_start_only_is_a_single_day() -> None:
    start, end = resolve_range("2026-05-01", None)

    assert start.date() == end.date() == date(2026, 5, 1)


def test_resolve_range_spans_both_dates() -> None:
    start, end = resolve_range("2026-05-01", "2026-05-07")

    assert start.date() == date(2026, 5, 1)
    assert end.date() == date(2026, 5, 7)


def test_resolve_range_rejects_bad_input() -> None:
    with pytest.raises(ValidationError):
        resolve_range("yesterday", None)
    with pytest.raises(ValidationError):
        resolve_range("2026-05-07", "2026-05-01")


def test_unsettled_appointment_counts_only_its_services(salon, make_appointment) -> None:
    appointment = make_appointment(
        services=[(salon.haircut, salon.asha)],
        products=[(salon.shampoo, salon.asha, 200)],
    )

    totals = appointment_totals(appointment, [])

    assert totals.settled is False
    assert totals.service_amount == Decimal("500")
    assert totals.product_amount == Decimal("0")
    assert totals.final_amount == Decimal("500")


def test_settled_appointment_uses_recorded_payment(salon, make_appointment, make_payment) -> None:
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])
    payment = make_payment(
        appointment, "531", service_amount="500", coupon_discount="50", sub_total="450",
        tax_amount="81", tips="0",
    )

    totals = appointment_totals(appointment, [payment])

    assert totals.settled is True
    assert totals.discount_amount == Decimal("50")
    assert totals.tax_amount == Decimal("81")
    assert totals.final_amount == Decimal("531")


def test_daily_booking_buckets_near_midnight_into_distinct_days(salon, make_appointment, make_payment) -> None:
    late = make_appointment(
        services=[(salon.haircut, salon.asha)],
        appointment_date=datetime(2026, 1, 1, 23, 30, tzinfo=timezone.utc),
    )
    make_payment(
        late, "550", payment_method="Split", service_amount="500", additional_charges="50",
        sub_total="550", splits=[("cash", 300), ("card", 200), ("Paytm", 50)],
    )
    make_appointment(
        services=[(salon.facial, salon.ravi)],
        appointment_date=datetime(2026, 1, 2, 0, 30, tzinfo=timezone.utc),
    )
    make_appointment(
        services=[(salon.haircut, salon.ravi)],
        status="upcoming",
        appointment_date=datetime(2026, 1, 2, 10, 0, tzinfo=timezone.utc),
    )

    days = daily_booking(salon.salon.salon_id, today=date(2026, 3, 10))

    assert [day["date"] for day in days] == sorted(day["date"] for day in days)
    assert len(days) == 16

    first, second = days[0], days[1]
    assert first["date"] == "2026-01-01"
    assert first["appointments_count"] == 1
    assert first["additional_charges"] == 50.0
    assert first["final_amount"] == 550.0
    assert first["payment_breakdown"] == {"cash": 350.0, "card": 200.0, "upi": 0.0}

    assert second["date"] == "2026-01-02"
    assert second["appointments_count"] == 1
    assert second["services_count"] == 1
    assert second["service_amount"] == 1000.0
    assert second["final_amount"] == 1000.0
    assert second["tax_amount"] == 0.0


def test_daily_booking_always_covers_the_last_fourteen_days(salon) -> None:
    days = daily_booking(salon.salon.salon_id, today=date(2026, 3, 10))

    assert len(days) == 14
    assert days[0]["date"] == "2026-02-25"
    assert days[-1]["date"] == "2026-03-10"
    assert all(day["appointments_count"] == 0 for day in days)
    assert days[-1]["payment_breakdown"] == {"cash": 0.0, "card": 0.0, "upi": 0.0}


def test_daily_booking_route_requires_salon_id(client) -> None:
    response = client.get("/daily-booking")

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_daily_booking_route(client, salon) -> None:
    response = client.get(f"/daily-booking?salon_id={salon.salon.salon_id}")

    assert response.status_code == 200
    assert len(response.get_json()["daily_booking"]) == 14
