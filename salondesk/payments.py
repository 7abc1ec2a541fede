"""Payment record builder: turns a checkout request into a persisted settlement."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from .billing import Adjustment, Settlement, SettlementInput, is_percentage, round2, settle, to_amount
from .errors import ConflictError, NotFoundError, ValidationError
from .extensions import db
from .invoices import render_invoice
from .models import (Appointment, BranchMembership, Coupon, Customer, CustomerMembership,
                     Payment, PaymentSplit, Tax, as_utc, utc_now)
from .parsing import parse_id

PAYMENT_METHODS = {"cash": "Cash", "card": "Card", "upi": "UPI", "split": "Split"}


def normalize_payment_method(value) -> str:
    method = PAYMENT_METHODS.get(str(value or "").strip().lower())
    if method is None:
        raise ValidationError(
            "payment_method must be one of Cash, Card, UPI, Split", error="invalid_payment_method"
        )
    return method


def active_membership(customer_id: int, salon_id: int, now: datetime | None = None) -> CustomerMembership | None:
    """The customer's single authoritative membership: the latest-started active one."""
    now = now or utc_now()
    return (
        CustomerMembership.query.join(BranchMembership)
        .filter(
            CustomerMembership.customer_id == customer_id,
            CustomerMembership.salon_id == salon_id,
            BranchMembership.status == 1,
            or_(CustomerMembership.end_date.is_(None), CustomerMembership.end_date >= now),
        )
        .order_by(CustomerMembership.start_date.desc(), CustomerMembership.customer_membership_id.desc())
        .first()
    )


def applicable_coupon(coupon_id, salon_id: int, now: datetime | None = None) -> Coupon:
    now = now or utc_now()
    coupon = Coupon.query.filter_by(coupon_id=parse_id(coupon_id, "coupon_id"), salon_id=salon_id).first()
    if coupon is None:
        raise NotFoundError("Coupon not found")

    reason = None
    if coupon.status != 1:
        reason = "coupon is inactive"
    elif coupon.start_date and now < as_utc(coupon.start_date):
        reason = "coupon is not yet valid"
    elif coupon.end_date and now > as_utc(coupon.end_date):
        reason = "coupon has expired"
    elif coupon.use_limit is not None and coupon.used_count >= coupon.use_limit:
        reason = "coupon use limit reached"

    if reason:
        current_app.logger.warning("Rejected coupon %s: %s", coupon.coupon_id, reason)
        raise ValidationError(reason, error="coupon_not_applicable")
    return coupon


def applicable_tax(tax_id, salon_id: int) -> Tax:
    tax = Tax.query.filter_by(tax_id=parse_id(tax_id, "tax_id"), salon_id=salon_id).first()
    if tax is None:
        raise NotFoundError("Tax not found")
    if tax.status != 1:
        raise ValidationError("tax is inactive", error="tax_not_applicable")
    return tax


def parse_splits(raw, final_total: Decimal) -> list[tuple[str, Decimal]]:
    """Validate split entries; their amounts must add up to the final total exactly."""
    if not isinstance(raw, list) or not raw:
        raise ValidationError("payment_split is required for Split payments", error="split_mismatch")

    splits = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("payment_split entries must be objects", error="split_mismatch")
        method = str(entry.get("method") or "").strip()
        if not method:
            raise ValidationError("payment_split entries need a method", error="split_mismatch")
        splits.append((method, to_amount(entry.get("amount"))))

    split_total = round2(sum((amount for _, amount in splits), Decimal("0")))
    if split_total != final_total:
        raise ValidationError(
            f"payment_split adds up to {split_total} but the final total is {final_total}",
            error="split_mismatch",
        )
    return splits


def settlement_input_for(
    appointment: Appointment,
    payload: dict,
    membership: CustomerMembership | None = None,
    coupon: Coupon | None = None,
    tax: Tax | None = None,
) -> SettlementInput:
    service_amount = sum((line.service_amount for line in appointment.services), Decimal("0"))
    product_amount = sum((line.total_price for line in appointment.products), Decimal("0"))

    membership_rule = None
    if membership is not None:
        plan = membership.branch_membership
        membership_rule = Adjustment(is_percentage(plan.discount_type), plan.discount)

    return SettlementInput(
        service_amount=service_amount,
        product_amount=product_amount,
        additional_charges=to_amount(payload.get("additional_charges")),
        membership=membership_rule,
        coupon=Adjustment(coupon.discount_type == "percent", coupon.discount_amount) if coupon else None,
        additional_discount=Adjustment.from_rule(
            payload.get("additional_discount_type"), payload.get("additional_discount")
        ),
        tax=Adjustment(tax.type == "percent", tax.value) if tax else None,
        tips=to_amount(payload.get("tips")),
    )


def _build_payment(appointment: Appointment, payload: dict, settlement: Settlement, method: str,
                   coupon: Coupon | None, tax: Tax | None) -> Payment:
    discount_type = "percentage" if is_percentage(payload.get("additional_discount_type")) else "flat"
    return Payment(
        salon_id=appointment.salon_id,
        branch_id=appointment.branch_id,
        appointment_id=appointment.appointment_id,
        service_amount=settlement.service_amount,
        product_amount=settlement.product_amount,
        additional_charges=settlement.additional_charges,
        membership_discount=settlement.membership_discount,
        coupon_id=coupon.coupon_id if coupon else None,
        coupon_discount=settlement.coupon_discount,
        additional_discount_type=discount_type,
        additional_discount_value=to_amount(payload.get("additional_discount")),
        additional_discount=settlement.additional_discount,
        sub_total=settlement.sub_total,
        tax_id=tax.tax_id if tax else None,
        tax_amount=settlement.tax_amount,
        tips=settlement.tips,
        final_total=settlement.final_total,
        payment_method=method,
    )


def record_payment(payload: dict) -> Payment:
    """Settle an appointment and persist the Payment in a single commit.

    Raises ValidationError, NotFoundError or ConflictError; database errors
    propagate after the session is rolled back.
    """
    if not payload.get("appointment_id"):
        raise ValidationError("appointment_id is required")
    appointment_id = parse_id(payload.get("appointment_id"), "appointment_id")
    method = normalize_payment_method(payload.get("payment_method"))

    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError("Appointment not found")
    customer = db.session.get(Customer, appointment.customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")

    if Payment.query.filter_by(appointment_id=appointment_id).first() is not None:
        raise ConflictError("Appointment has already been settled", error="already_paid")

    now = utc_now()
    membership = active_membership(customer.customer_id, appointment.salon_id, now)
    coupon = applicable_coupon(payload["coupon_id"], appointment.salon_id, now) if payload.get("coupon_id") else None
    tax = applicable_tax(payload["tax_id"], appointment.salon_id) if payload.get("tax_id") else None

    settlement = settle(settlement_input_for(appointment, payload, membership, coupon, tax))

    splits = []
    if method == "Split":
        splits = parse_splits(payload.get("payment_split"), settlement.final_total)

    payment = _build_payment(appointment, payload, settlement, method, coupon, tax)
    payment.splits = [PaymentSplit(method=name, amount=amount) for name, amount in splits]
    db.session.add(payment)

    appointment.payment_status = "Paid"
    appointment.grand_total = settlement.final_total
    if coupon is not None:
        coupon.used_count = (coupon.used_count or 0) + 1

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning("Duplicate settlement attempt for appointment %s", appointment_id)
        raise ConflictError("Appointment has already been settled", error="already_paid") from None
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Recorded payment %s for appointment %s: final_total=%s method=%s",
        payment.payment_id, appointment_id, settlement.final_total, method,
    )
    return payment


def issue_invoice(payment: Payment) -> str | None:
    """Render and attach the invoice. A failure here never undoes the payment."""
    appointment = payment.appointment
    try:
        file_name = render_invoice(payment, appointment, appointment.customer, current_app.config["INVOICE_DIR"])
        payment.invoice_file_name = file_name
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Payment %s recorded but invoice generation failed", payment.payment_id
        )
        return None
    return file_name
