"""Appointment booking and status routes.

Booking snapshots every line price so later catalog edits never change what a
customer is charged at checkout.
"""
from __future__ import annotations

from collections import Counter
from decimal import Decimal

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from .billing import ZERO, round2
from .errors import ConflictError, NotFoundError, ValidationError
from .extensions import db
from .models import (Appointment, AppointmentProduct, AppointmentService, Branch, Customer,
                     CustomerPackage, CustomerPackageService, Payment, Product, ProductVariant,
                     Service, Staff, utc_now)
from .parsing import parse_id
from .routes import database_error, json_body, optional_id, parse_datetime, require_salon_id

bp_appointments = Blueprint("appointments", __name__)

APPOINTMENT_STATUSES = ("upcoming", "checked-in", "check-out", "cancelled")
PAYMENT_STATUSES = ("Pending", "Paid")


def _staff_in_salon(staff_id, salon_id: int) -> int | None:
    staff_id = optional_id(staff_id, "staff_id")
    if staff_id is None:
        return None
    staff = db.session.get(Staff, staff_id)
    if staff is None or staff.salon_id != salon_id:
        raise NotFoundError("Staff member not found")
    return staff_id


def _open_reservations(customer_package_id: int, service_id: int) -> int:
    """Package uses held by bookings that have not been checked out or cancelled.

    Units are only consumed at check-out, so these still count against the package.
    """
    return (
        AppointmentService.query.join(Appointment)
        .filter(
            AppointmentService.customer_package_id == customer_package_id,
            AppointmentService.service_id == service_id,
            AppointmentService.used_package.is_(True),
            Appointment.status.notin_(("check-out", "cancelled")),
        )
        .count()
    )


def _package_slot(customer_id: int, service_id: int, reserved: Counter) -> CustomerPackageService | None:
    """A purchased package line that still covers one more use of ``service_id``."""
    now = utc_now()
    candidates = (
        CustomerPackageService.query.join(CustomerPackage)
        .filter(
            CustomerPackage.customer_id == customer_id,
            CustomerPackageService.service_id == service_id,
            CustomerPackageService.quantity > 0,
            or_(CustomerPackage.end_date.is_(None), CustomerPackage.end_date >= now),
        )
        .order_by(CustomerPackage.start_date, CustomerPackageService.id)
        .all()
    )
    for item in candidates:
        held = _open_reservations(item.customer_package_id, service_id) + reserved[item.id]
        if item.quantity > held:
            reserved[item.id] += 1
            return item
    return None


def _service_lines(raw, appointment: Appointment) -> list[AppointmentService]:
    if not isinstance(raw, list):
        raise ValidationError("services must be a list")

    reserved: Counter = Counter()
    lines = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("services entries must be objects")
        service_id = parse_id(entry.get("service_id"), "service_id")
        service = db.session.get(Service, service_id)
        if service is None or service.salon_id != appointment.salon_id:
            raise NotFoundError("Service not found")

        line = AppointmentService(
            service_id=service_id,
            staff_id=_staff_in_salon(entry.get("staff_id"), appointment.salon_id),
            service_amount=round2(service.regular_price),
            used_package=False,
            paid=False,
        )
        package_item = _package_slot(appointment.customer_id, service_id, reserved)
        if package_item is not None:
            line.service_amount = ZERO
            line.used_package = True
            line.customer_package_id = package_item.customer_package_id
        lines.append(line)
    return lines


def _product_lines(raw, salon_id: int) -> list[AppointmentProduct]:
    if not isinstance(raw, list):
        raise ValidationError("products must be a list")

    lines = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("products entries must be objects")
        product_id = parse_id(entry.get("product_id"), "product_id")
        product = db.session.get(Product, product_id)
        if product is None or product.salon_id != salon_id:
            raise NotFoundError("Product not found")

        quantity = parse_id(entry.get("quantity", 1), "quantity")
        if quantity < 1:
            raise ValidationError("quantity must be at least 1")

        stocked = product
        name = product.name
        variant_id = optional_id(entry.get("variant_id"), "variant_id")
        if variant_id is not None:
            variant = db.session.get(ProductVariant, variant_id)
            if variant is None or variant.product_id != product_id:
                raise NotFoundError("Product variant not found")
            stocked = variant
            name = f"{product.name} ({variant.name})"

        if stocked.stock < quantity:
            raise ValidationError(
                f"Only {stocked.stock} of {name} left in stock", error="insufficient_stock"
            )
        stocked.stock -= quantity

        unit_price = round2(stocked.price)
        lines.append(AppointmentProduct(
            product_id=product_id,
            variant_id=variant_id,
            staff_id=_staff_in_salon(entry.get("staff_id"), salon_id),
            name=name,
            quantity=quantity,
            unit_price=unit_price,
            total_price=round2(unit_price * quantity),
        ))
    return lines


@bp_appointments.post("/appointments")
def create_appointment() -> tuple[dict[str, object], int]:
    """Book an appointment with service and product lines.
    ---
    tags:
      - Appointments
    responses:
      201:
        description: Appointment booked with price snapshots
      400:
        description: Invalid payload or insufficient stock
      404:
        description: Customer, service, product or staff not found
    """
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    customer_id = parse_id(payload.get("customer_id"), "customer_id")

    customer = db.session.get(Customer, customer_id)
    if customer is None or customer.salon_id != salon_id:
        return jsonify({"error": "not_found", "message": "Customer not found"}), 404

    branch_id = optional_id(payload.get("branch_id"), "branch_id")
    if branch_id is not None:
        branch = db.session.get(Branch, branch_id)
        if branch is None or branch.salon_id != salon_id:
            return jsonify({"error": "not_found", "message": "Branch not found"}), 404

    if not payload.get("services") and not payload.get("products"):
        return (
            jsonify({"error": "invalid_payload", "message": "at least one service or product is required"}),
            400,
        )

    appointment = Appointment(
        salon_id=salon_id,
        branch_id=branch_id,
        customer_id=customer_id,
        appointment_date=parse_datetime(payload.get("appointment_date"), "appointment_date") or utc_now(),
        appointment_time=payload.get("appointment_time"),
        notes=payload.get("notes"),
        status="upcoming",
        payment_status="Pending",
    )

    try:
        appointment.services = _service_lines(payload.get("services") or [], appointment)
        appointment.products = _product_lines(payload.get("products") or [], salon_id)
        appointment.total_payment = round2(
            sum((line.service_amount for line in appointment.services), Decimal("0"))
            + sum((line.total_price for line in appointment.products), Decimal("0"))
        )

        db.session.add(appointment)
        db.session.flush()
        appointment.order_code = f"APT{appointment.appointment_id:06d}"
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create appointment")

    current_app.logger.info(
        "Booked appointment %s for customer %s: total=%s",
        appointment.appointment_id, customer_id, appointment.total_payment,
    )
    return jsonify({"appointment": appointment.to_dict()}), 201


@bp_appointments.get("/appointments")
def list_appointments() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    query = Appointment.query.filter_by(salon_id=salon_id)

    status = request.args.get("status")
    if status:
        if status not in APPOINTMENT_STATUSES:
            return jsonify({"error": "invalid_query", "message": f"unknown status '{status}'"}), 400
        query = query.filter_by(status=status)
    branch_id = optional_id(request.args.get("branch_id"), "branch_id")
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)

    appointments = query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_id.desc()).all()
    return jsonify({"appointments": [appointment.to_dict() for appointment in appointments]}), 200


@bp_appointments.get("/appointments/<int:appointment_id>")
def get_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return jsonify({"error": "not_found", "message": "Appointment not found"}), 404

    data = appointment.to_dict()
    payment = Payment.query.filter_by(appointment_id=appointment_id).first()
    data["payment"] = payment.to_dict() if payment else None
    return jsonify({"appointment": data}), 200


def _consume_package_units(appointment: Appointment) -> None:
    for line in appointment.services:
        if not line.used_package or line.customer_package_id is None:
            continue
        item = CustomerPackageService.query.filter_by(
            customer_package_id=line.customer_package_id, service_id=line.service_id
        ).first()
        if item is None or item.quantity <= 0:
            raise ConflictError("Package has no remaining uses for this service", error="package_exhausted")
        item.quantity -= 1


def _reclaim_package_units(appointment: Appointment) -> None:
    """Re-reserve the package uses of a cancelled appointment that is being reopened."""
    reclaimed: Counter = Counter()
    for line in appointment.services:
        if not line.used_package or line.customer_package_id is None:
            continue
        item = CustomerPackageService.query.filter_by(
            customer_package_id=line.customer_package_id, service_id=line.service_id
        ).first()
        held = _open_reservations(line.customer_package_id, line.service_id) if item else 0
        if item is None or item.quantity <= held + reclaimed[item.id]:
            raise ConflictError("Package has no remaining uses for this service", error="package_exhausted")
        reclaimed[item.id] += 1


@bp_appointments.patch("/appointments/<int:appointment_id>")
def update_appointment(appointment_id: int) -> tuple[dict[str, object], int]:
    """Move an appointment through its lifecycle.

    Checking out consumes one unit of every package line redeemed at booking.
    Cancelling releases those uses; reopening claims them again if still free.
    A checked-out appointment is final.
    """
    payload = json_body()
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        return jsonify({"error": "not_found", "message": "Appointment not found"}), 404

    status = payload.get("status")
    payment_status = payload.get("payment_status")
    if status is None and payment_status is None:
        return jsonify({"error": "invalid_payload", "message": "status or payment_status is required"}), 400
    if status is not None and status not in APPOINTMENT_STATUSES:
        return jsonify({"error": "invalid_status", "message": f"unknown status '{status}'"}), 400
    if payment_status is not None and payment_status not in PAYMENT_STATUSES:
        return jsonify({"error": "invalid_status", "message": f"unknown payment_status '{payment_status}'"}), 400

    previous = appointment.status
    if status is not None and status != previous:
        if previous == "check-out":
            raise ConflictError("Checked-out appointments cannot change status", error="invalid_transition")
        if previous == "cancelled":
            _reclaim_package_units(appointment)
        if status == "check-out":
            _consume_package_units(appointment)
        appointment.status = status
    if payment_status is not None:
        appointment.payment_status = payment_status

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "update appointment")

    current_app.logger.info("Appointment %s moved from %s to %s", appointment_id, previous, appointment.status)
    return jsonify({"appointment": appointment.to_dict()}), 200
