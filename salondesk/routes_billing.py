"""Checkout, staff earning and dashboard routes."""
from __future__ import annotations

import os

from flask import Blueprint, current_app, jsonify, request, send_file, url_for
from sqlalchemy.exc import SQLAlchemyError

from .billing import distinct_staff, split_tip, to_amount
from .earnings import pay_out, refresh_earning
from .errors import NotFoundError
from .extensions import db
from .models import Payment, Staff, StaffPayout
from .payments import issue_invoice, record_payment
from .reports import daily_booking, overall_summary, resolve_range
from .routes import database_error, json_body, optional_id, require_salon_id

bp_billing = Blueprint("billing", __name__)


def _invoice_url(payment: Payment) -> str | None:
    if not payment.invoice_file_name:
        return None
    return url_for("billing.download_invoice", payment_id=payment.payment_id)


def _staff_or_404(staff_id: int, salon_id: int) -> Staff:
    staff = db.session.get(Staff, staff_id)
    if staff is None or staff.salon_id != salon_id:
        raise NotFoundError("Staff member not found")
    return staff


@bp_billing.post("/payments")
def create_payment() -> tuple[dict[str, object], int]:
    """Settle a checked-out appointment and issue its invoice.
    ---
    tags:
      - Payments
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            appointment_id:
              type: integer
            payment_method:
              type: string
              enum: [Cash, Card, UPI, Split]
            coupon_id:
              type: integer
            tax_id:
              type: integer
            additional_discount:
              type: number
            additional_discount_type:
              type: string
              enum: [percentage, flat]
            additional_charges:
              type: number
            tips:
              type: number
            payment_split:
              type: array
              items:
                type: object
                properties:
                  method:
                    type: string
                  amount:
                    type: number
    responses:
      201:
        description: Payment recorded; invoice_status tells whether the PDF was produced
      400:
        description: Invalid payload, coupon or tax not applicable, or split mismatch
      404:
        description: Appointment, customer, coupon or tax not found
      409:
        description: Appointment already settled
      500:
        description: Database error
    """
    try:
        payment = record_payment(json_body())
    except SQLAlchemyError as exc:
        return database_error(exc, "record payment")

    file_name = issue_invoice(payment)
    return (
        jsonify({
            "message": "Payment recorded successfully",
            "payment": payment.to_dict(),
            "invoice_pdf_url": _invoice_url(payment) if file_name else None,
            "invoice_status": "generated" if file_name else "failed",
        }),
        201,
    )


@bp_billing.get("/payments")
def list_payments() -> tuple[dict[str, object], int]:
    """List settlements with each staff member's share of the tip."""
    salon_id = require_salon_id(request.args.get("salon_id"))
    query = Payment.query.filter_by(salon_id=salon_id)
    branch_id = optional_id(request.args.get("branch_id"), "branch_id")
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)

    staff_names = {staff.staff_id: staff.full_name for staff in Staff.query.filter_by(salon_id=salon_id)}
    payments = []
    for payment in query.order_by(Payment.created_at.desc(), Payment.payment_id.desc()):
        services = payment.appointment.services if payment.appointment else []
        staff_ids = distinct_staff(line.staff_id for line in services)
        share = split_tip(payment.tips, len(staff_ids))

        data = payment.to_dict()
        data["service_count"] = len(services)
        data["staff_tips"] = [
            {"staff_id": staff_id, "staff_name": staff_names.get(staff_id), "tip": float(share)}
            for staff_id in staff_ids
        ]
        data["invoice_pdf_url"] = _invoice_url(payment)
        payments.append(data)

    return jsonify({"payments": payments}), 200


@bp_billing.get("/payments/<int:payment_id>/invoice")
def download_invoice(payment_id: int):
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        return jsonify({"error": "not_found", "message": "Payment not found"}), 404
    if not payment.invoice_file_name:
        return jsonify({"error": "not_found", "message": "Invoice has not been generated"}), 404

    pdf_path = os.path.join(current_app.config["INVOICE_DIR"], payment.invoice_file_name)
    if not os.path.isfile(pdf_path):
        return jsonify({"error": "not_found", "message": "Invoice file is missing"}), 404

    return send_file(pdf_path, mimetype="application/pdf", download_name=payment.invoice_file_name)


@bp_billing.post("/payments/<int:payment_id>/invoice")
def regenerate_invoice(payment_id: int) -> tuple[dict[str, object], int]:
    """Retry invoice generation for a payment whose PDF failed or went missing."""
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        return jsonify({"error": "not_found", "message": "Payment not found"}), 404

    if issue_invoice(payment) is None:
        return jsonify({"error": "invoice_failed", "message": "Invoice generation failed"}), 500
    return jsonify({"invoice_pdf_url": _invoice_url(payment), "invoice_status": "generated"}), 201


@bp_billing.get("/staff-earning")
def list_staff_earnings() -> tuple[dict[str, object], int]:
    """Live earning snapshot of every staff member in a salon."""
    salon_id = require_salon_id(request.args.get("salon_id"))

    try:
        snapshots = [
            refresh_earning(staff, salon_id)
            for staff in Staff.query.filter_by(salon_id=salon_id).order_by(Staff.staff_id).all()
        ]
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "compute staff earnings")

    return jsonify({"staff_earnings": [snapshot.to_dict() for snapshot in snapshots]}), 200


@bp_billing.get("/staff-earning/<int:staff_id>")
def get_staff_earning(staff_id: int) -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    staff = _staff_or_404(staff_id, salon_id)

    try:
        snapshot = refresh_earning(staff, salon_id)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "compute staff earning")

    data = snapshot.to_dict()
    data["services"] = [
        {
            "appointment_id": line.appointment_id,
            "service_id": line.service_id,
            "service_name": line.service.name if line.service else None,
            "service_amount": float(line.service_amount),
            "commission_earned": float(snapshot.line_commissions[line.id]),
        }
        for line in snapshot.lines
    ]
    return jsonify({"staff_earning": data}), 200


@bp_billing.post("/staff-earning/pay/<int:staff_id>")
def pay_staff(staff_id: int) -> tuple[dict[str, object], int]:
    """Pay out a staff member's unpaid commission and tips.
    ---
    tags:
      - Staff Earnings
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            salon_id:
              type: integer
            payment_method:
              type: string
            description:
              type: string
            salary:
              type: number
    responses:
      201:
        description: Payout recorded and earning window restarted
      400:
        description: Missing salon_id or payment_method, or nothing to pay
      404:
        description: Staff member not found
    """
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    payment_method = (payload.get("payment_method") or "").strip()
    if not payment_method:
        return jsonify({"error": "invalid_payload", "message": "payment_method is required"}), 400

    staff = _staff_or_404(staff_id, salon_id)
    try:
        payout = pay_out(
            staff,
            salon_id,
            payment_method,
            payload.get("description"),
            salary=to_amount(payload.get("salary")),
        )
    except SQLAlchemyError as exc:
        return database_error(exc, "pay out staff member")

    return jsonify({"message": "Payout recorded successfully", "payout": payout.to_dict()}), 201


@bp_billing.get("/staff-payouts")
def list_staff_payouts() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    query = StaffPayout.query.filter_by(salon_id=salon_id)
    staff_id = optional_id(request.args.get("staff_id"), "staff_id")
    if staff_id is not None:
        query = query.filter_by(staff_id=staff_id)

    payouts = query.order_by(StaffPayout.date.desc(), StaffPayout.payout_id.desc()).all()
    return jsonify({"payouts": [payout.to_dict() for payout in payouts]}), 200


@bp_billing.get("/staff-payouts/<int:payout_id>")
def get_staff_payout(payout_id: int) -> tuple[dict[str, object], int]:
    payout = db.session.get(StaffPayout, payout_id)
    if payout is None:
        return jsonify({"error": "not_found", "message": "Payout not found"}), 404
    return jsonify({"payout": payout.to_dict()}), 200


@bp_billing.get("/daily-booking")
def get_daily_booking() -> tuple[dict[str, object], int]:
    """Per-day checkout totals, always covering the last 14 UTC days."""
    salon_id = require_salon_id(request.args.get("salon_id"))
    try:
        days = daily_booking(salon_id)
    except SQLAlchemyError as exc:
        return database_error(exc, "build daily booking summary")
    return jsonify({"daily_booking": days}), 200


@bp_billing.get("/overall-summary")
def get_overall_summary() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    start, end = resolve_range(request.args.get("start_date"), request.args.get("end_date"))
    try:
        summary = overall_summary(salon_id, start, end)
    except SQLAlchemyError as exc:
        return database_error(exc, "build overall summary")
    return jsonify(summary), 200
