"""pytest configuration: app, client and seeded salon fixtures."""
from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from salondesk import create_app  # noqa: E402
from salondesk.extensions import db  # noqa: E402
from salondesk.models import (Appointment, AppointmentProduct, AppointmentService, Branch,  # noqa: E402
                              Customer, Payment, PaymentSplit, Product, RevenueCommission,
                              Salon, Service, Staff, Tax, utc_now)


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "INVOICE_DIR": str(tmp_path / "invoices"),
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db_session(app):
    return db.session


@pytest.fixture
def salon(db_session):
    """One salon with a branch, two commissioned staff, a customer and a small catalog."""
    shop = Salon(name="Glow Studio", contact_number="080-4000-1000")
    db_session.add(shop)
    db_session.flush()

    branch = Branch(salon_id=shop.salon_id, name="MG Road")
    plan = RevenueCommission(
        salon_id=shop.salon_id,
        commission_name="Standard",
        commission_type="Percentage",
        commission=[{"slot": "0-500", "amount": 10}, {"slot": "501-1000", "amount": 15}],
    )
    db_session.add_all([branch, plan])
    db_session.flush()

    asha = Staff(salon_id=shop.salon_id, branch_id=branch.branch_id, full_name="Asha",
                 assigned_commission_id=plan.commission_id)
    ravi = Staff(salon_id=shop.salon_id, branch_id=branch.branch_id, full_name="Ravi",
                 assigned_commission_id=plan.commission_id)
    customer = Customer(salon_id=shop.salon_id, full_name="Meera", phone_number="9876543210")
    haircut = Service(salon_id=shop.salon_id, name="Haircut", regular_price=Decimal("500"))
    facial = Service(salon_id=shop.salon_id, name="Facial", regular_price=Decimal("1000"))
    shampoo = Product(salon_id=shop.salon_id, name="Shampoo", price=Decimal("200"), stock=5)
    gst = Tax(salon_id=shop.salon_id, title="GST", type="percent", value=Decimal("18"))
    db_session.add_all([asha, ravi, customer, haircut, facial, shampoo, gst])
    db_session.commit()

    return SimpleNamespace(
        salon=shop, branch=branch, plan=plan, asha=asha, ravi=ravi, customer=customer,
        haircut=haircut, facial=facial, shampoo=shampoo, gst=gst,
    )


@pytest.fixture
def make_appointment(db_session, salon):
    """Build an appointment from ``(service, staff)`` and ``(product, staff, total)`` tuples."""

    def _make(services=(), products=(), status="check-out", appointment_date=None,
              created_at=None, payment_status="Pending"):
        appointment = Appointment(
            salon_id=salon.salon.salon_id,
            branch_id=salon.branch.branch_id,
            customer_id=salon.customer.customer_id,
            status=status,
            payment_status=payment_status,
            appointment_date=appointment_date or utc_now(),
        )
        if created_at is not None:
            appointment.created_at = created_at
        for service, staff in services:
            appointment.services.append(AppointmentService(
                service_id=service.service_id,
                staff_id=staff.staff_id if staff else None,
                service_amount=service.regular_price,
            ))
        for product, staff, total in products:
            appointment.products.append(AppointmentProduct(
                product_id=product.product_id,
                staff_id=staff.staff_id if staff else None,
                name=product.name,
                quantity=1,
                unit_price=Decimal(str(total)),
                total_price=Decimal(str(total)),
            ))
        appointment.total_payment = (
            sum((line.service_amount for line in appointment.services), Decimal("0"))
            + sum((line.total_price for line in appointment.products), Decimal("0"))
        )
        db_session.add(appointment)
        db_session.commit()
        return appointment

    return _make


@pytest.fixture
def make_payment(db_session):
    """Persist a settlement row directly, bypassing the checkout route."""

    def _make(appointment, final_total, payment_method="Cash", splits=(), **amounts):
        payment = Payment(
            salon_id=appointment.salon_id,
            branch_id=appointment.branch_id,
            appointment_id=appointment.appointment_id,
            final_total=Decimal(str(final_total)),
            payment_method=payment_method,
            splits=[PaymentSplit(method=method, amount=Decimal(str(amount))) for method, amount in splits],
            **{name: Decimal(str(value)) for name, value in amounts.items()},
        )
        appointment.payment_status = "Paid"
        db_session.add(payment)
        db_session.commit()
        return payment

    return _make
