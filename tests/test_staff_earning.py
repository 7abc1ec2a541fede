"""Tests for staff earnings, payouts and the payout watermark."""
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock, patch

import pytest
from sqlalchemy.dialects import postgresql

from salondesk.earnings import (EPOCH, compute_earning, earning_row_lock, lock_earning_row,
                                unpaid_service_lines, watermark)
from salondesk.models import AppointmentService, StaffEarning, StaffPayout, utc_now


@pytest.fixture
def shared_visit(salon, make_appointment, make_payment):
    """Asha cuts (500) and Ravi does a facial (1000); the customer tips 100."""
    appointment = make_appointment(services=[(salon.haircut, salon.asha), (salon.facial, salon.ravi)])
    make_payment(appointment, "1600", service_amount="1500", sub_total="1500", tips="100")
    return appointment


def test_earning_combines_commission_and_tip_share(client, salon, shared_visit) -> None:
    response = client.get(f"/staff-earning/{salon.asha.staff_id}?salon_id={salon.salon.salon_id}")

    assert response.status_code == 200
    earning = response.get_json()["staff_earning"]
    assert earning["total_booking"] == 1
    assert earning["service_amount"] == 500.0
    assert earning["commission_earning"] == 50.0
    assert earning["tip_earning"] == 50.0
    assert earning["staff_earning"] == 100.0
    assert earning["services"][0]["commission_earned"] == 50.0


def test_salon_earnings_list_every_staff_member(client, salon, shared_visit) -> None:
    response = client.get(f"/staff-earning?salon_id={salon.salon.salon_id}")

    assert response.status_code == 200
    earnings = {row["staff_name"]: row for row in response.get_json()["staff_earnings"]}
    assert earnings["Asha"]["staff_earning"] == 100.0
    assert earnings["Ravi"]["commission_earning"] == 150.0
    assert earnings["Ravi"]["staff_earning"] == 200.0
    assert StaffEarning.query.count() == 2


def test_only_checked_out_appointments_earn(client, salon, make_appointment) -> None:
    make_appointment(services=[(salon.haircut, salon.asha)], status="checked-in")

    response = client.get(f"/staff-earning/{salon.asha.staff_id}?salon_id={salon.salon.salon_id}")

    assert response.get_json()["staff_earning"]["staff_earning"] == 0.0


def test_staff_without_commission_plan_earns_tips_only(client, db_session, salon, shared_visit) -> None:
    salon.asha.assigned_commission_id = None
    db_session.commit()

    response = client.get(f"/staff-earning/{salon.asha.staff_id}?salon_id={salon.salon.salon_id}")

    earning = response.get_json()["staff_earning"]
    assert earning["commission_earning"] == 0.0
    assert earning["tip_earning"] == 50.0


def test_payout_marks_lines_paid_and_moves_watermark(client, salon, shared_visit) -> None:
    before = utc_now()

    response = client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json={
        "salon_id": salon.salon.salon_id, "payment_method": "Cash", "description": "October",
    })

    assert response.status_code == 201
    payout = response.get_json()["payout"]
    assert payout["commission"] == 50.0
    assert payout["tips"] == 50.0
    assert payout["total_pay"] == 100.0
    assert payout["payment_method"] == "cash"

    line = AppointmentService.query.filter_by(staff_id=salon.asha.staff_id).one()
    assert line.paid is True
    assert line.commission_earned == Decimal("50.00")
    assert watermark(salon.asha.staff_id, salon.salon.salon_id) >= before

    after = client.get(f"/staff-earning/{salon.asha.staff_id}?salon_id={salon.salon.salon_id}")
    assert after.get_json()["staff_earning"]["staff_earning"] == 0.0

    # Ravi's share of the same appointment is untouched.
    ravi = client.get(f"/staff-earning/{salon.ravi.staff_id}?salon_id={salon.salon.salon_id}")
    assert ravi.get_json()["staff_earning"]["staff_earning"] == 200.0


def test_paid_lines_stay_excluded_even_after_the_watermark(client, db_session, salon, shared_visit) -> None:
    client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json={
        "salon_id": salon.salon.salon_id, "payment_method": "cash",
    })
    shared_visit.created_at = utc_now() + timedelta(days=1)
    db_session.commit()

    snapshot = compute_earning(salon.asha, salon.salon.salon_id)

    assert snapshot.lines == []
    assert snapshot.staff_earning == Decimal("0")


def test_unpaid_lines_before_the_watermark_are_excluded(db_session, salon, make_appointment) -> None:
    make_appointment(services=[(salon.haircut, salon.asha)], created_at=utc_now() - timedelta(days=2))
    db_session.add(StaffEarning(
        staff_id=salon.asha.staff_id, salon_id=salon.salon.salon_id,
        earning_start_date=utc_now() - timedelta(days=1),
    ))
    db_session.commit()

    since = watermark(salon.asha.staff_id, salon.salon.salon_id)

    assert since > EPOCH
    assert unpaid_service_lines(salon.asha.staff_id, salon.salon.salon_id, since) == []
    assert len(unpaid_service_lines(salon.asha.staff_id, salon.salon.salon_id, EPOCH)) == 1


def test_new_work_after_a_payout_starts_a_fresh_window(client, salon, shared_visit, make_appointment) -> None:
    client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json={
        "salon_id": salon.salon.salon_id, "payment_method": "cash",
    })
    make_appointment(services=[(salon.facial, salon.asha)], created_at=utc_now() + timedelta(minutes=1))

    response = client.get(f"/staff-earning/{salon.asha.staff_id}?salon_id={salon.salon.salon_id}")

    earning = response.get_json()["staff_earning"]
    assert earning["total_booking"] == 1
    assert earning["commission_earning"] == 150.0
    assert earning["tip_earning"] == 0.0


def test_salary_is_added_to_the_payout(client, salon, shared_visit) -> None:
    response = client.post(f"/staff-earning/pay/{salon.ravi.staff_id}", json={
        "salon_id": salon.salon.salon_id, "payment_method": "UPI", "salary": "15000",
    })

    assert response.status_code == 201
    assert response.get_json()["payout"]["total_pay"] == 15200.0


def test_payout_with_nothing_to_pay_is_rejected(client, salon) -> None:
    response = client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json={
        "salon_id": salon.salon.salon_id, "payment_method": "cash",
    })

    assert response.status_code == 400
    assert response.get_json()["error"] == "nothing_to_pay"
    assert StaffPayout.query.count() == 0


def test_payout_requires_salon_and_method(client, salon) -> None:
    missing_salon = client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json={"payment_method": "cash"})
    missing_method = client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json={"salon_id": salon.salon.salon_id})

    assert missing_salon.status_code == 400
    assert missing_method.status_code == 400


def test_unknown_staff_is_not_found(client, salon) -> None:
    response = client.get(f"/staff-earning/999?salon_id={salon.salon.salon_id}")

    assert response.status_code == 404


def test_payout_history(client, salon, shared_visit) -> None:
    client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json={
        "salon_id": salon.salon.salon_id, "payment_method": "cash",
    })

    listing = client.get(f"/staff-payouts?salon_id={salon.salon.salon_id}&staff_id={salon.asha.staff_id}")
    [payout] = listing.get_json()["payouts"]
    detail = client.get(f"/staff-payouts/{payout['id']}")

    assert detail.status_code == 200
    assert detail.get_json()["payout"]["staff_name"] == "Asha"
    assert client.get("/staff-payouts/999").status_code == 404


def test_earning_row_is_selected_for_update() -> None:
    statement = earning_row_lock(1, 1).compile(dialect=postgresql.dialect())

    assert "FOR UPDATE" in str(statement)


def test_payout_locks_the_earning_row_before_reading_lines(client, salon, shared_visit) -> None:
    calls = Mock()
    with patch("salondesk.earnings.lock_earning_row", wraps=lock_earning_row) as lock, \
            patch("salondesk.earnings.compute_earning", wraps=compute_earning) as compute:
        calls.attach_mock(lock, "lock")
        calls.attach_mock(compute, "compute")
        response = client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json={
            "salon_id": salon.salon.salon_id, "payment_method": "cash",
        })

    assert response.status_code == 201
    assert [call[0] for call in calls.mock_calls] == ["lock", "compute"]


def test_repeated_payout_does_not_pay_the_same_work_twice(client, salon, shared_visit) -> None:
    body = {"salon_id": salon.salon.salon_id, "payment_method": "cash"}

    first = client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json=body)
    second = client.post(f"/staff-earning/pay/{salon.asha.staff_id}", json=body)

    assert first.status_code == 201
    assert second.status_code == 400
    assert second.get_json()["error"] == "nothing_to_pay"
    assert StaffPayout.query.filter_by(staff_id=salon.asha.staff_id).count() == 1
