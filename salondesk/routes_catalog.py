"""CRUD routes for the pricing inputs a salon configures before checkout."""
from __future__ import annotations

import calendar
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .billing import is_known_rule, is_percentage, parse_slot, to_amount
from .errors import ConflictError, NotFoundError, ValidationError
from .extensions import db
from .models import (Branch, BranchMembership, BranchPackage, BranchPackageService, Coupon,
                     Customer, CustomerMembership, CustomerPackage, CustomerPackageService,
                     Product, ProductVariant, RevenueCommission, Salon, Service, Staff, Tax,
                     as_utc, utc_now)
from .parsing import parse_id
from .routes import database_error, json_body, optional_id, parse_datetime, require_salon_id

bp_catalog = Blueprint("catalog", __name__)

# Months of validity per subscription plan; None never expires.
PLAN_MONTHS = {"1-month": 1, "3-months": 3, "6-months": 6, "12-months": 12, "lifetime": None}


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _salon_or_404(salon_id: int) -> Salon:
    salon = db.session.get(Salon, salon_id)
    if salon is None:
        raise NotFoundError("Salon not found")
    return salon


def _scoped_or_404(model, object_id: int, salon_id: int | None, label: str):
    row = db.session.get(model, object_id)
    if row is None or (salon_id is not None and row.salon_id != salon_id):
        raise NotFoundError(f"{label} not found")
    return row


def _required_text(payload: dict, field: str) -> str:
    value = (payload.get(field) or "").strip() if isinstance(payload.get(field), str) else ""
    if not value:
        raise ValidationError(f"{field} is required")
    return value


def _optional_int(value, field: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer") from None
    if number < 0:
        raise ValidationError(f"{field} must not be negative")
    return number


def _status(value, default: int = 1) -> int:
    if value is None:
        return default
    if value in (0, 1, "0", "1", True, False):
        return int(value)
    raise ValidationError("status must be 0 or 1")


def _percent_or_flat(value, field: str, percent_label: str) -> str:
    if not is_known_rule(value):
        raise ValidationError(f"{field} must be percentage or flat")
    return percent_label if is_percentage(value) else "flat"


def _commission_slots(raw) -> list[dict[str, object]]:
    if not isinstance(raw, list):
        raise ValidationError("commission must be a list of slots", error="invalid_commission")
    slots = []
    for entry in raw:
        if not isinstance(entry, dict) or parse_slot(entry.get("slot")) is None:
            raise ValidationError("each commission slot needs a 'min-max' label", error="invalid_commission")
        slots.append({"slot": entry["slot"].strip(), "amount": float(to_amount(entry.get("amount")))})
    return slots


# --- salons and branches ----------------------------------------------------

@bp_catalog.post("/salons")
def create_salon() -> tuple[dict[str, object], int]:
    """Create a salon (tenant).
    ---
    tags:
      - Salons
    responses:
      201:
        description: Salon created
      400:
        description: name missing
    """
    payload = json_body()
    name = _required_text(payload, "name")

    try:
        salon = Salon(
            name=name,
            contact_email=payload.get("contact_email"),
            contact_number=payload.get("contact_number"),
            address=payload.get("address"),
        )
        db.session.add(salon)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create salon")

    return jsonify({"salon": salon.to_dict()}), 201


@bp_catalog.get("/salons")
def list_salons() -> tuple[dict[str, object], int]:
    salons = Salon.query.order_by(Salon.salon_id).all()
    return jsonify({"salons": [salon.to_dict() for salon in salons]}), 200


@bp_catalog.get("/salons/<int:salon_id>")
def get_salon(salon_id: int) -> tuple[dict[str, object], int]:
    salon = _salon_or_404(salon_id)
    data = salon.to_dict()
    data["branches"] = [branch.to_dict() for branch in salon.branches.order_by(Branch.branch_id)]
    return jsonify({"salon": data}), 200


@bp_catalog.post("/branches")
def create_branch() -> tuple[dict[str, object], int]:
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    name = _required_text(payload, "name")
    _salon_or_404(salon_id)

    try:
        branch = Branch(
            salon_id=salon_id,
            name=name,
            address=payload.get("address"),
            contact_number=payload.get("contact_number"),
            contact_email=payload.get("contact_email"),
        )
        db.session.add(branch)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create branch")

    return jsonify({"branch": branch.to_dict()}), 201


@bp_catalog.get("/branches")
def list_branches() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    branches = Branch.query.filter_by(salon_id=salon_id).order_by(Branch.branch_id).all()
    return jsonify({"branches": [branch.to_dict() for branch in branches]}), 200


# --- staff ------------------------------------------------------------------

def _apply_staff_fields(staff: Staff, payload: dict) -> None:
    if "branch_id" in payload:
        branch_id = optional_id(payload.get("branch_id"), "branch_id")
        if branch_id is not None:
            _scoped_or_404(Branch, branch_id, staff.salon_id, "Branch")
        staff.branch_id = branch_id
    if "assigned_commission_id" in payload:
        commission_id = optional_id(payload.get("assigned_commission_id"), "assigned_commission_id")
        if commission_id is not None:
            _scoped_or_404(RevenueCommission, commission_id, staff.salon_id, "Revenue commission")
        staff.assigned_commission_id = commission_id
    for field in ("email", "phone_number"):
        if field in payload:
            setattr(staff, field, payload.get(field))
    if "salary" in payload:
        staff.salary = to_amount(payload.get("salary"))
    if "status" in payload:
        staff.status = _status(payload.get("status"))


@bp_catalog.post("/staff")
def create_staff() -> tuple[dict[str, object], int]:
    """Create a staff member, optionally bound to a revenue commission table.
    ---
    tags:
      - Staff
    responses:
      201:
        description: Staff member created successfully
      400:
        description: Invalid input
      404:
        description: Salon, branch or commission not found
    """
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    full_name = _required_text(payload, "full_name")
    _salon_or_404(salon_id)

    staff = Staff(salon_id=salon_id, full_name=full_name)
    _apply_staff_fields(staff, payload)

    try:
        db.session.add(staff)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create staff member")

    return jsonify({"staff": staff.to_dict()}), 201


@bp_catalog.get("/staff")
def list_staff() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    query = Staff.query.filter_by(salon_id=salon_id)
    branch_id = optional_id(request.args.get("branch_id"), "branch_id")
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    return jsonify({"staff": [staff.to_dict() for staff in query.order_by(Staff.staff_id)]}), 200


@bp_catalog.put("/staff/<int:staff_id>")
def update_staff(staff_id: int) -> tuple[dict[str, object], int]:
    payload = json_body()
    staff = _scoped_or_404(Staff, staff_id, None, "Staff member")

    if "full_name" in payload:
        staff.full_name = _required_text(payload, "full_name")
    _apply_staff_fields(staff, payload)

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "update staff member")

    return jsonify({"staff": staff.to_dict()}), 200


# --- customers --------------------------------------------------------------

@bp_catalog.post("/customers")
def create_customer() -> tuple[dict[str, object], int]:
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    full_name = _required_text(payload, "full_name")
    phone_number = _required_text(payload, "phone_number")
    _salon_or_404(salon_id)

    gender = (payload.get("gender") or "").strip().lower() or None
    if gender not in (None, "male", "female", "other"):
        raise ValidationError("gender must be male, female or other")

    try:
        customer = Customer(
            salon_id=salon_id,
            full_name=full_name,
            phone_number=phone_number,
            email=payload.get("email"),
            gender=gender,
        )
        db.session.add(customer)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create customer")

    return jsonify({"customer": customer.to_dict()}), 201


@bp_catalog.get("/customers")
def list_customers() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    customers = Customer.query.filter_by(salon_id=salon_id).order_by(Customer.customer_id).all()
    return jsonify({"customers": [customer.to_dict() for customer in customers]}), 200


@bp_catalog.get("/customers/<int:customer_id>")
def get_customer(customer_id: int) -> tuple[dict[str, object], int]:
    customer = _scoped_or_404(Customer, customer_id, None, "Customer")
    data = customer.to_dict()
    data["memberships"] = [
        membership.to_dict()
        for membership in CustomerMembership.query.filter_by(customer_id=customer_id)
        .order_by(CustomerMembership.start_date.desc())
    ]
    data["packages"] = [
        package.to_dict()
        for package in CustomerPackage.query.filter_by(customer_id=customer_id)
        .order_by(CustomerPackage.customer_package_id)
    ]
    return jsonify({"customer": data}), 200


@bp_catalog.post("/customers/<int:customer_id>/memberships")
def purchase_membership(customer_id: int) -> tuple[dict[str, object], int]:
    """Sell a branch membership to a customer.

    The end date follows the plan's length in months; a lifetime plan never
    expires. Buying a membership the customer already holds is a conflict.
    """
    payload = json_body()
    customer = _scoped_or_404(Customer, customer_id, None, "Customer")
    membership_id = parse_id(payload.get("membership_id"), "membership_id")
    plan = _scoped_or_404(BranchMembership, membership_id, customer.salon_id, "Membership")

    if plan.status != 1:
        raise ValidationError("membership is inactive", error="membership_inactive")
    if plan.subscription_plan not in PLAN_MONTHS:
        raise ValidationError(f"unknown subscription plan '{plan.subscription_plan}'", error="invalid_plan")

    now = utc_now()
    existing = CustomerMembership.query.filter(
        CustomerMembership.customer_id == customer_id,
        CustomerMembership.branch_membership_id == membership_id,
        or_(CustomerMembership.end_date.is_(None), CustomerMembership.end_date >= now),
    ).first()
    if existing is not None:
        raise ConflictError("Customer already holds this membership", error="membership_active")

    months = PLAN_MONTHS[plan.subscription_plan]
    try:
        purchase = CustomerMembership(
            customer_id=customer_id,
            salon_id=customer.salon_id,
            branch_membership_id=membership_id,
            start_date=now,
            end_date=add_months(now, months) if months else None,
            membership_amount=plan.membership_amount,
            payment_method=(payload.get("payment_method") or "cash").strip().lower(),
            created_at=now,
        )
        db.session.add(purchase)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "purchase membership")

    current_app.logger.info("Customer %s bought membership %s", customer_id, membership_id)
    return jsonify({"membership": purchase.to_dict()}), 201


@bp_catalog.post("/customers/<int:customer_id>/packages")
def purchase_package(customer_id: int) -> tuple[dict[str, object], int]:
    payload = json_body()
    customer = _scoped_or_404(Customer, customer_id, None, "Customer")
    package_id = parse_id(payload.get("package_id"), "package_id")
    package = _scoped_or_404(BranchPackage, package_id, customer.salon_id, "Package")

    now = utc_now()
    if package.status != 1 or (package.end_date and as_utc(package.end_date) < now):
        raise ValidationError("package is not available", error="package_unavailable")

    try:
        purchase = CustomerPackage(
            customer_id=customer_id,
            salon_id=customer.salon_id,
            branch_package_id=package_id,
            package_price=package.package_price,
            payment_method=(payload.get("payment_method") or "cash").strip().lower(),
            start_date=now,
            end_date=package.end_date,
            created_at=now,
            services=[
                CustomerPackageService(service_id=item.service_id, quantity=item.quantity)
                for item in package.services
            ],
        )
        db.session.add(purchase)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "purchase package")

    current_app.logger.info("Customer %s bought package %s", customer_id, package_id)
    return jsonify({"package": purchase.to_dict()}), 201


# --- services and products --------------------------------------------------

@bp_catalog.post("/services")
def create_service() -> tuple[dict[str, object], int]:
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    name = _required_text(payload, "name")
    _salon_or_404(salon_id)

    try:
        service = Service(
            salon_id=salon_id,
            name=name,
            regular_price=to_amount(payload.get("regular_price")),
            duration_minutes=_optional_int(payload.get("duration_minutes"), "duration_minutes") or 30,
            status=_status(payload.get("status")),
        )
        db.session.add(service)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create service")

    return jsonify({"service": service.to_dict()}), 201


@bp_catalog.get("/services")
def list_services() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    services = Service.query.filter_by(salon_id=salon_id).order_by(Service.service_id).all()
    return jsonify({"services": [service.to_dict() for service in services]}), 200


@bp_catalog.post("/products")
def create_product() -> tuple[dict[str, object], int]:
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    name = _required_text(payload, "name")
    _salon_or_404(salon_id)

    raw_variants = payload.get("variants") or []
    if not isinstance(raw_variants, list):
        raise ValidationError("variants must be a list")
    variants = []
    for entry in raw_variants:
        if not isinstance(entry, dict):
            raise ValidationError("variants must be objects")
        variants.append(ProductVariant(
            name=_required_text(entry, "name"),
            price=to_amount(entry.get("price")),
            stock=_optional_int(entry.get("stock"), "stock") or 0,
        ))

    try:
        product = Product(
            salon_id=salon_id,
            name=name,
            price=to_amount(payload.get("price")),
            stock=_optional_int(payload.get("stock"), "stock") or 0,
            variants=variants,
        )
        db.session.add(product)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create product")

    return jsonify({"product": product.to_dict()}), 201


@bp_catalog.get("/products")
def list_products() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    products = Product.query.filter_by(salon_id=salon_id).order_by(Product.product_id).all()
    return jsonify({"products": [product.to_dict() for product in products]}), 200


# --- coupons ----------------------------------------------------------------

def _apply_coupon_fields(coupon: Coupon, payload: dict) -> None:
    if "name" in payload:
        coupon.name = _required_text(payload, "name")
    if "coupon_code" in payload:
        coupon.coupon_code = payload.get("coupon_code")
    if "discount_type" in payload:
        coupon.discount_type = _percent_or_flat(payload.get("discount_type"), "discount_type", "percent")
    if "discount_amount" in payload:
        coupon.discount_amount = to_amount(payload.get("discount_amount"))
    if "use_limit" in payload:
        coupon.use_limit = _optional_int(payload.get("use_limit"), "use_limit")
    if "start_date" in payload:
        coupon.start_date = parse_datetime(payload.get("start_date"), "start_date")
    if "end_date" in payload:
        coupon.end_date = parse_datetime(payload.get("end_date"), "end_date")
    if "status" in payload:
        coupon.status = _status(payload.get("status"))


@bp_catalog.post("/coupons")
def create_coupon() -> tuple[dict[str, object], int]:
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    _salon_or_404(salon_id)
    _required_text(payload, "name")
    if "discount_type" not in payload:
        raise ValidationError("discount_type is required")

    coupon = Coupon(salon_id=salon_id, used_count=0, status=1)
    _apply_coupon_fields(coupon, payload)

    try:
        db.session.add(coupon)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create coupon")

    return jsonify({"coupon": coupon.to_dict()}), 201


@bp_catalog.get("/coupons")
def list_coupons() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    coupons = Coupon.query.filter_by(salon_id=salon_id).order_by(Coupon.coupon_id).all()
    return jsonify({"coupons": [coupon.to_dict() for coupon in coupons]}), 200


@bp_catalog.put("/coupons/<int:coupon_id>")
def update_coupon(coupon_id: int) -> tuple[dict[str, object], int]:
    coupon = _scoped_or_404(Coupon, coupon_id, None, "Coupon")
    _apply_coupon_fields(coupon, json_body())

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "update coupon")

    return jsonify({"coupon": coupon.to_dict()}), 200


@bp_catalog.delete("/coupons/<int:coupon_id>")
def delete_coupon(coupon_id: int) -> tuple[dict[str, str], int]:
    coupon = _scoped_or_404(Coupon, coupon_id, None, "Coupon")
    try:
        db.session.delete(coupon)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Coupon is referenced by recorded payments", error="in_use") from None
    except SQLAlchemyError as exc:
        return database_error(exc, "delete coupon")

    return jsonify({"message": "Coupon deleted successfully"}), 200


# --- taxes ------------------------------------------------------------------

def _apply_tax_fields(tax: Tax, payload: dict) -> None:
    if "title" in payload:
        tax.title = _required_text(payload, "title")
    if "type" in payload:
        tax.type = _percent_or_flat(payload.get("type"), "type", "percent")
    if "value" in payload:
        tax.value = to_amount(payload.get("value"))
    if "status" in payload:
        tax.status = _status(payload.get("status"))


@bp_catalog.post("/taxes")
def create_tax() -> tuple[dict[str, object], int]:
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    _salon_or_404(salon_id)
    _required_text(payload, "title")
    if "type" not in payload:
        raise ValidationError("type is required")

    tax = Tax(salon_id=salon_id, status=1)
    _apply_tax_fields(tax, payload)

    try:
        db.session.add(tax)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create tax")

    return jsonify({"tax": tax.to_dict()}), 201


@bp_catalog.get("/taxes")
def list_taxes() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    taxes = Tax.query.filter_by(salon_id=salon_id).order_by(Tax.tax_id).all()
    return jsonify({"taxes": [tax.to_dict() for tax in taxes]}), 200


@bp_catalog.put("/taxes/<int:tax_id>")
def update_tax(tax_id: int) -> tuple[dict[str, object], int]:
    tax = _scoped_or_404(Tax, tax_id, None, "Tax")
    _apply_tax_fields(tax, json_body())

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "update tax")

    return jsonify({"tax": tax.to_dict()}), 200


@bp_catalog.delete("/taxes/<int:tax_id>")
def delete_tax(tax_id: int) -> tuple[dict[str, str], int]:
    tax = _scoped_or_404(Tax, tax_id, None, "Tax")
    try:
        db.session.delete(tax)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Tax is referenced by recorded payments", error="in_use") from None
    except SQLAlchemyError as exc:
        return database_error(exc, "delete tax")

    return jsonify({"message": "Tax deleted successfully"}), 200


# --- revenue commissions ----------------------------------------------------

def _apply_commission_fields(plan: RevenueCommission, payload: dict) -> None:
    if "commission_name" in payload:
        plan.commission_name = _required_text(payload, "commission_name")
    if "commission_type" in payload:
        plan.commission_type = _percent_or_flat(payload.get("commission_type"), "commission_type", "Percentage")
    if "commission" in payload:
        plan.commission = _commission_slots(payload.get("commission"))
    if "branch_id" in payload:
        branch_id = optional_id(payload.get("branch_id"), "branch_id")
        if branch_id is not None:
            _scoped_or_404(Branch, branch_id, plan.salon_id, "Branch")
        plan.branch_id = branch_id


@bp_catalog.post("/revenue-commissions")
def create_revenue_commission() -> tuple[dict[str, object], int]:
    """Create a slot-based commission table.
    ---
    tags:
      - Commissions
    parameters:
      - in: body
        name: body
        required: true
        schema:
          properties:
            salon_id:
              type: integer
            commission_name:
              type: string
            commission_type:
              type: string
              enum: [Percentage, flat]
            commission:
              type: array
              items:
                type: object
                properties:
                  slot:
                    type: string
                    example: "0-500"
                  amount:
                    type: number
    responses:
      201:
        description: Commission table created
      400:
        description: Malformed slot list
    """
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    _salon_or_404(salon_id)
    _required_text(payload, "commission_name")

    plan = RevenueCommission(salon_id=salon_id, commission_type="Percentage", commission=[])
    _apply_commission_fields(plan, payload)

    try:
        db.session.add(plan)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create revenue commission")

    return jsonify({"revenue_commission": plan.to_dict()}), 201


@bp_catalog.get("/revenue-commissions")
def list_revenue_commissions() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    plans = RevenueCommission.query.filter_by(salon_id=salon_id).order_by(RevenueCommission.commission_id)
    return jsonify({"revenue_commissions": [plan.to_dict() for plan in plans]}), 200


@bp_catalog.put("/revenue-commissions/<int:commission_id>")
def update_revenue_commission(commission_id: int) -> tuple[dict[str, object], int]:
    plan = _scoped_or_404(RevenueCommission, commission_id, None, "Revenue commission")
    _apply_commission_fields(plan, json_body())

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "update revenue commission")

    return jsonify({"revenue_commission": plan.to_dict()}), 200


@bp_catalog.delete("/revenue-commissions/<int:commission_id>")
def delete_revenue_commission(commission_id: int) -> tuple[dict[str, str], int]:
    plan = _scoped_or_404(RevenueCommission, commission_id, None, "Revenue commission")
    try:
        Staff.query.filter_by(assigned_commission_id=commission_id).update({"assigned_commission_id": None})
        db.session.delete(plan)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "delete revenue commission")

    return jsonify({"message": "Revenue commission deleted successfully"}), 200


# --- branch memberships and packages ----------------------------------------

@bp_catalog.post("/branch-memberships")
def create_branch_membership() -> tuple[dict[str, object], int]:
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    _salon_or_404(salon_id)
    name = _required_text(payload, "membership_name")
    plan = (payload.get("subscription_plan") or "").strip().lower()
    if plan not in PLAN_MONTHS:
        raise ValidationError(
            "subscription_plan must be one of " + ", ".join(PLAN_MONTHS), error="invalid_plan"
        )

    try:
        membership = BranchMembership(
            salon_id=salon_id,
            membership_name=name,
            description=payload.get("description"),
            subscription_plan=plan,
            discount=to_amount(payload.get("discount")),
            discount_type=_percent_or_flat(payload.get("discount_type", "percentage"), "discount_type", "percentage"),
            membership_amount=to_amount(payload.get("membership_amount")),
            status=_status(payload.get("status")),
        )
        db.session.add(membership)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create branch membership")

    return jsonify({"membership": membership.to_dict()}), 201


@bp_catalog.get("/branch-memberships")
def list_branch_memberships() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    memberships = BranchMembership.query.filter_by(salon_id=salon_id).order_by(BranchMembership.membership_id)
    return jsonify({"memberships": [membership.to_dict() for membership in memberships]}), 200


@bp_catalog.post("/branch-packages")
def create_branch_package() -> tuple[dict[str, object], int]:
    payload = json_body()
    salon_id = require_salon_id(payload.get("salon_id"))
    _salon_or_404(salon_id)
    name = _required_text(payload, "package_name")

    details = payload.get("package_details") or []
    if not isinstance(details, list) or not details:
        raise ValidationError("package_details must list at least one service")
    items = []
    for entry in details:
        if not isinstance(entry, dict):
            raise ValidationError("package_details entries must be objects")
        service_id = parse_id(entry.get("service_id"), "service_id")
        _scoped_or_404(Service, service_id, salon_id, "Service")
        quantity = _optional_int(entry.get("quantity"), "quantity") or 1
        items.append(BranchPackageService(service_id=service_id, quantity=quantity))

    try:
        package = BranchPackage(
            salon_id=salon_id,
            package_name=name,
            package_price=to_amount(payload.get("package_price")),
            end_date=parse_datetime(payload.get("end_date"), "end_date"),
            status=_status(payload.get("status")),
            services=items,
        )
        db.session.add(package)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "create branch package")

    return jsonify({"package": package.to_dict()}), 201


@bp_catalog.get("/branch-packages")
def list_branch_packages() -> tuple[dict[str, object], int]:
    salon_id = require_salon_id(request.args.get("salon_id"))
    packages = BranchPackage.query.filter_by(salon_id=salon_id).order_by(BranchPackage.package_id)
    return jsonify({"packages": [package.to_dict() for package in packages]}), 200
