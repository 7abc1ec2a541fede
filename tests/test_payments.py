"""Tests for the checkout endpoint and payment listing."""
from __future__ import annotations

import os
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from salondesk.extensions import db
from salondesk.models import (Appointment, BranchMembership, Coupon, CustomerMembership, Payment,
                              Staff, Tax, utc_now)


@pytest.fixture
def member(db_session, salon):
    """Give the salon's customer an active 10% lifetime membership."""
    plan = BranchMembership(
        salon_id=salon.salon.salon_id,
        membership_name="Gold",
        subscription_plan="lifetime",
        discount=Decimal("10"),
        discount_type="percentage",
        membership_amount=Decimal("999"),
    )
    db_session.add(plan)
    db_session.flush()
    db_session.add(CustomerMembership(
        customer_id=salon.customer.customer_id,
        salon_id=salon.salon.salon_id,
        branch_membership_id=plan.membership_id,
        start_date=utc_now() - timedelta(days=1),
        end_date=None,
        membership_amount=Decimal("999"),
        payment_method="cash",
    ))
    db_session.commit()
    return plan


def test_checkout_applies_membership_tax_and_tips(app, client, salon, member, make_appointment) -> None:
    appointment = make_appointment(
        services=[(salon.facial, salon.asha)],
        products=[(salon.shampoo, salon.asha, 200)],
    )

    response = client.post("/payments", json={
        "appointment_id": appointment.appointment_id,
        "payment_method": "cash",
        "tax_id": salon.gst.tax_id,
        "tips": 50,
    })

    assert response.status_code == 201
    data = response.get_json()
    payment = data["payment"]
    assert payment["service_amount"] == 1000.0
    assert payment["product_amount"] == 200.0
    assert payment["membership_discount"] == 120.0
    assert payment["sub_total"] == 1080.0
    assert payment["tax_amount"] == 194.4
    assert payment["tips"] == 50.0
    assert payment["final_total"] == 1324.4
    assert payment["payment_method"] == "Cash"

    assert data["invoice_status"] == "generated"
    assert data["invoice_pdf_url"] == f"/payments/{payment['id']}/invoice"
    assert os.path.isfile(os.path.join(app.config["INVOICE_DIR"], payment["invoice_file_name"]))
    assert payment["invoice_file_name"].startswith("INV-")

    stored = db.session.get(Appointment, appointment.appointment_id)
    assert stored.payment_status == "Paid"
    assert stored.grand_total == Decimal("1324.40")


def test_invoice_can_be_downloaded(client, salon, make_appointment) -> None:
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])
    created = client.post("/payments", json={
        "appointment_id": appointment.appointment_id, "payment_method": "Card",
    }).get_json()

    response = client.get(created["invoice_pdf_url"])

    assert response.status_code == 200
    assert response.mimetype == "application/pdf"
    assert response.data.startswith(b"%PDF")


def test_second_settlement_of_an_appointment_is_rejected(client, salon, make_appointment) -> None:
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])
    body = {"appointment_id": appointment.appointment_id, "payment_method": "cash"}

    assert client.post("/payments", json=body).status_code == 201
    response = client.post("/payments", json=body)

    assert response.status_code == 409
    assert response.get_json()["error"] == "already_paid"
    assert Payment.query.count() == 1


def test_missing_appointment_id_is_rejected(client) -> None:
    response = client.post("/payments", json={"payment_method": "cash"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_unknown_payment_method_is_rejected(client, salon, make_appointment) -> None:
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])

    response = client.post("/payments", json={
        "appointment_id": appointment.appointment_id, "payment_method": "cheque",
    })

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payment_method"


def test_unknown_appointment_is_not_found(client) -> None:
    response = client.post("/payments", json={"appointment_id": 999, "payment_method": "cash"})

    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"


def test_malformed_optional_amounts_default_to_zero(client, salon, make_appointment) -> None:
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])

    response = client.post("/payments", json={
        "appointment_id": appointment.appointment_id,
        "payment_method": "upi",
        "tips": "abc",
        "additional_charges": -20,
        "additional_discount": 10,
        "additional_discount_type": "percentage",
    })

    assert response.status_code == 201
    payment = response.get_json()["payment"]
    assert payment["tips"] == 0.0
    assert payment["additional_charges"] == 0.0
    assert payment["additional_discount"] == 50.0
    assert payment["additional_discount_value"] == 10.0
    assert payment["additional_discount_type"] == "percentage"
    assert payment["final_total"] == 450.0


def test_split_must_add_up_to_final_total(client, salon, make_appointment) -> None:
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])

    response = client.post("/payments", json={
        "appointment_id": appointment.appointment_id,
        "payment_method": "Split",
        "payment_split": [{"method": "cash", "amount": 300}, {"method": "card", "amount": 150}],
    })

    assert response.status_code == 400
    assert response.get_json()["error"] == "split_mismatch"
    assert Payment.query.count() == 0


def test_split_payment_is_recorded(client, salon, make_appointment) -> None:
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])

    response = client.post("/payments", json={
        "appointment_id": appointment.appointment_id,
        "payment_method": "split",
        "payment_split": [
            {"method": "cash", "amount": 300},
            {"method": "card", "amount": 150},
            {"method": "Paytm", "amount": 50},
        ],
    })

    assert response.status_code == 201
    payment = response.get_json()["payment"]
    assert payment["payment_method"] == "Split"
    assert [split["method"] for split in payment["payment_split"]] == ["cash", "card", "Paytm"]


def test_coupon_is_consumed_and_then_exhausted(client, db_session, salon, make_appointment) -> None:
    coupon = Coupon(
        salon_id=salon.salon.salon_id, name="Welcome", discount_type="flat",
        discount_amount=Decimal("50"), use_limit=1, used_count=0,
    )
    db_session.add(coupon)
    db_session.commit()
    first = make_appointment(services=[(salon.haircut, salon.asha)])
    second = make_appointment(services=[(salon.haircut, salon.asha)])

    response = client.post("/payments", json={
        "appointment_id": first.appointment_id, "payment_method": "cash", "coupon_id": coupon.coupon_id,
    })
    assert response.status_code == 201
    assert response.get_json()["payment"]["coupon_discount"] == 50.0
    assert db_session.get(Coupon, coupon.coupon_id).used_count == 1

    response = client.post("/payments", json={
        "appointment_id": second.appointment_id, "payment_method": "cash", "coupon_id": coupon.coupon_id,
    })
    assert response.status_code == 400
    assert response.get_json()["error"] == "coupon_not_applicable"


def test_expired_coupon_is_not_applicable(client, db_session, salon, make_appointment) -> None:
    coupon = Coupon(
        salon_id=salon.salon.salon_id, name="Diwali", discount_type="percent",
        discount_amount=Decimal("20"), end_date=utc_now() - timedelta(days=1),
    )
    db_session.add(coupon)
    db_session.commit()
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])

    response = client.post("/payments", json={
        "appointment_id": appointment.appointment_id, "payment_method": "cash", "coupon_id": coupon.coupon_id,
    })

    assert response.status_code == 400
    assert response.get_json()["error"] == "coupon_not_applicable"


def test_inactive_tax_is_not_applicable(client, db_session, salon, make_appointment) -> None:
    tax = Tax(salon_id=salon.salon.salon_id, title="Old VAT", type="percent", value=Decimal("5"), status=0)
    db_session.add(tax)
    db_session.commit()
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])

    response = client.post("/payments", json={
        "appointment_id": appointment.appointment_id, "payment_method": "cash", "tax_id": tax.tax_id,
    })

    assert response.status_code == 400
    assert response.get_json()["error"] == "tax_not_applicable"


def test_invoice_failure_keeps_the_payment(client, salon, make_appointment) -> None:
    appointment = make_appointment(services=[(salon.haircut, salon.asha)])

    with patch("salondesk.payments.render_invoice", side_effect=OSError("disk full")):
        response = client.post("/payments", json={
            "appointment_id": appointment.appointment_id, "payment_method": "cash",
        })

    assert response.status_code == 201
    data = response.get_json()
    assert data["invoice_status"] == "failed"
    assert data["invoice_pdf_url"] is None
    assert data["payment"]["invoice_file_name"] is None
    assert Payment.query.count() == 1

    retry = client.post(f"/payments/{data['payment']['id']}/invoice")
    assert retry.status_code == 201
    assert retry.get_json()["invoice_status"] == "generated"


def test_list_payments_splits_tips_across_distinct_staff(client, db_session, salon, make_appointment) -> None:
    meena = Staff(salon_id=salon.salon.salon_id, full_name="Meena")
    db_session.add(meena)
    db_session.commit()
    appointment = make_appointment(services=[
        (salon.haircut, salon.asha), (salon.facial, salon.ravi), (salon.haircut, meena), (salon.haircut, salon.asha),
    ])
    client.post("/payments", json={
        "appointment_id": appointment.appointment_id, "payment_method": "cash", "tips": 100,
    })

    response = client.get(f"/payments?salon_id={salon.salon.salon_id}")

    assert response.status_code == 200
    [payment] = response.get_json()["payments"]
    assert payment["service_count"] == 4
    assert [tip["staff_name"] for tip in payment["staff_tips"]] == ["Asha", "Ravi", "Meena"]
    assert all(tip["tip"] == 33.33 for tip in payment["staff_tips"])


def test_list_payments_requires_salon_id(client) -> None:
    response = client.get("/payments")

    assert response.status_code == 400
