"""Database models for the SalonDesk backend."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _money(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


Money = db.Numeric(12, 2)


class Salon(db.Model):
    __tablename__ = "salons"

    salon_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    contact_email = db.Column(db.String(255))
    contact_number = db.Column(db.String(30))
    address = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    branches = db.relationship("Branch", back_populates="salon", lazy="dynamic")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.salon_id,
            "name": self.name,
            "contact_email": self.contact_email,
            "contact_number": self.contact_number,
            "address": self.address,
            "created_at": _iso(self.created_at),
        }


class Branch(db.Model):
    __tablename__ = "branches"

    branch_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    address = db.Column(db.String(255))
    contact_number = db.Column(db.String(30))
    contact_email = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    salon = db.relationship("Salon", back_populates="branches")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.branch_id,
            "salon_id": self.salon_id,
            "name": self.name,
            "address": self.address,
            "contact_number": self.contact_number,
            "contact_email": self.contact_email,
        }


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(
        db.Enum(
            "admin",
            "manager",
            "staff",
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="manager",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    auth_account = db.relationship("AuthAccount", back_populates="user", uselist=False)

    def to_dict_basic(self) -> dict[str, object]:
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "salon_id": self.salon_id,
        }


class AuthAccount(db.Model):
    __tablename__ = "auth_accounts"

    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), primary_key=True)
    password_hash = db.Column(db.String(255), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    user = db.relationship("User", back_populates="auth_account")


class RevenueCommission(db.Model):
    """Bucketed commission table: an ordered list of ``{slot: "min-max", amount}``."""

    __tablename__ = "revenue_commissions"

    commission_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.branch_id"), nullable=True)
    commission_name = db.Column(db.String(150), nullable=False)
    commission_type = db.Column(
        db.Enum("Percentage", "flat", name="commission_type", native_enum=False, validate_strings=True),
        nullable=False,
        server_default="Percentage",
    )
    commission = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.commission_id,
            "salon_id": self.salon_id,
            "branch_id": self.branch_id,
            "commission_name": self.commission_name,
            "commission_type": self.commission_type,
            "commission": list(self.commission or []),
        }


class Staff(db.Model):
    __tablename__ = "staff"

    staff_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.branch_id"), nullable=True)
    full_name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255))
    phone_number = db.Column(db.String(30))
    status = db.Column(db.Integer, nullable=False, default=1)
    assigned_commission_id = db.Column(
        db.Integer, db.ForeignKey("revenue_commissions.commission_id"), nullable=True
    )
    salary = db.Column(Money, nullable=False, default=Decimal("0"))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    assigned_commission = db.relationship("RevenueCommission")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.staff_id,
            "salon_id": self.salon_id,
            "branch_id": self.branch_id,
            "full_name": self.full_name,
            "email": self.email,
            "phone_number": self.phone_number,
            "status": self.status,
            "assigned_commission_id": self.assigned_commission_id,
            "salary": _money(self.salary),
        }


class Customer(db.Model):
    __tablename__ = "customers"

    customer_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    full_name = db.Column(db.String(150), nullable=False)
    email = db.Column(db.String(255))
    phone_number = db.Column(db.String(30), nullable=False)
    gender = db.Column(
        db.Enum("male", "female", "other", name="customer_gender", native_enum=False, validate_strings=True),
        nullable=True,
    )
    status = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.customer_id,
            "salon_id": self.salon_id,
            "full_name": self.full_name,
            "email": self.email,
            "phone_number": self.phone_number,
            "gender": self.gender,
            "status": self.status,
        }


class Service(db.Model):
    __tablename__ = "services"

    service_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    regular_price = db.Column(Money, nullable=False, default=Decimal("0"))
    duration_minutes = db.Column(db.Integer, nullable=False, default=30)
    status = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.service_id,
            "salon_id": self.salon_id,
            "name": self.name,
            "regular_price": _money(self.regular_price),
            "duration_minutes": self.duration_minutes,
            "status": self.status,
        }


class Product(db.Model):
    __tablename__ = "products"

    product_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    price = db.Column(Money, nullable=False, default=Decimal("0"))
    stock = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    variants = db.relationship(
        "ProductVariant", back_populates="product", cascade="all, delete-orphan"
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.product_id,
            "salon_id": self.salon_id,
            "name": self.name,
            "price": _money(self.price),
            "stock": self.stock,
            "variants": [variant.to_dict() for variant in self.variants],
        }


class ProductVariant(db.Model):
    __tablename__ = "product_variants"

    variant_id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.product_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    price = db.Column(Money, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product", back_populates="variants")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.variant_id,
            "name": self.name,
            "price": _money(self.price),
            "stock": self.stock,
        }


class Coupon(db.Model):
    __tablename__ = "coupons"

    coupon_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    coupon_code = db.Column(db.String(50))
    discount_type = db.Column(
        db.Enum("percent", "flat", name="coupon_discount_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    discount_amount = db.Column(Money, nullable=False, default=Decimal("0"))
    # NULL means unlimited
    use_limit = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.coupon_id,
            "salon_id": self.salon_id,
            "name": self.name,
            "coupon_code": self.coupon_code,
            "discount_type": self.discount_type,
            "discount_amount": _money(self.discount_amount),
            "use_limit": self.use_limit,
            "used_count": self.used_count,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "status": self.status,
        }


class Tax(db.Model):
    __tablename__ = "taxes"

    tax_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    title = db.Column(db.String(100), nullable=False)
    type = db.Column(
        db.Enum("percent", "flat", name="tax_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    value = db.Column(Money, nullable=False, default=Decimal("0"))
    status = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.tax_id,
            "salon_id": self.salon_id,
            "title": self.title,
            "type": self.type,
            "value": _money(self.value),
            "status": self.status,
        }


class BranchMembership(db.Model):
    __tablename__ = "branch_memberships"

    membership_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    membership_name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text)
    subscription_plan = db.Column(db.String(30), nullable=False)
    discount = db.Column(Money, nullable=False, default=Decimal("0"))
    discount_type = db.Column(
        db.Enum("percentage", "flat", name="membership_discount_type", native_enum=False, validate_strings=True),
        nullable=False,
        server_default="percentage",
    )
    membership_amount = db.Column(Money, nullable=False, default=Decimal("0"))
    status = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.membership_id,
            "salon_id": self.salon_id,
            "membership_name": self.membership_name,
            "description": self.description,
            "subscription_plan": self.subscription_plan,
            "discount": _money(self.discount),
            "discount_type": self.discount_type,
            "membership_amount": _money(self.membership_amount),
            "status": self.status,
        }


class CustomerMembership(db.Model):
    """A customer's purchase of a branch membership; ``end_date`` NULL means lifetime."""

    __tablename__ = "customer_memberships"

    customer_membership_id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.customer_id"), nullable=False)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    branch_membership_id = db.Column(
        db.Integer, db.ForeignKey("branch_memberships.membership_id"), nullable=False
    )
    start_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    end_date = db.Column(db.DateTime, nullable=True)
    membership_amount = db.Column(Money, nullable=False, default=Decimal("0"))
    payment_method = db.Column(db.String(20))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    branch_membership = db.relationship("BranchMembership")
    customer = db.relationship("Customer")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.customer_membership_id,
            "customer_id": self.customer_id,
            "salon_id": self.salon_id,
            "branch_membership": self.branch_membership.to_dict() if self.branch_membership else None,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "membership_amount": _money(self.membership_amount),
            "payment_method": self.payment_method,
        }


class BranchPackage(db.Model):
    __tablename__ = "branch_packages"

    package_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    package_name = db.Column(db.String(150), nullable=False)
    package_price = db.Column(Money, nullable=False, default=Decimal("0"))
    end_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    services = db.relationship(
        "BranchPackageService", back_populates="package", cascade="all, delete-orphan",
        order_by="BranchPackageService.id",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.package_id,
            "salon_id": self.salon_id,
            "package_name": self.package_name,
            "package_price": _money(self.package_price),
            "end_date": _iso(self.end_date),
            "status": self.status,
            "package_details": [
                {"service_id": item.service_id, "quantity": item.quantity}
                for item in self.services
            ],
        }


class BranchPackageService(db.Model):
    __tablename__ = "branch_package_services"

    id = db.Column(db.Integer, primary_key=True)
    package_id = db.Column(db.Integer, db.ForeignKey("branch_packages.package_id"), nullable=False)
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    package = db.relationship("BranchPackage", back_populates="services")


class CustomerPackage(db.Model):
    __tablename__ = "customer_packages"

    customer_package_id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.customer_id"), nullable=False)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    branch_package_id = db.Column(
        db.Integer, db.ForeignKey("branch_packages.package_id"), nullable=False
    )
    package_price = db.Column(Money, nullable=False, default=Decimal("0"))
    payment_method = db.Column(db.String(20))
    start_date = db.Column(db.DateTime, nullable=False, default=utc_now)
    end_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    services = db.relationship(
        "CustomerPackageService", back_populates="customer_package", cascade="all, delete-orphan",
        order_by="CustomerPackageService.id",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.customer_package_id,
            "customer_id": self.customer_id,
            "salon_id": self.salon_id,
            "branch_package_id": self.branch_package_id,
            "package_price": _money(self.package_price),
            "payment_method": self.payment_method,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "package_details": [
                {"service_id": item.service_id, "quantity": item.quantity}
                for item in self.services
            ],
        }


class CustomerPackageService(db.Model):
    """Remaining redeemable quantity of one service inside a purchased package."""

    __tablename__ = "customer_package_services"

    id = db.Column(db.Integer, primary_key=True)
    customer_package_id = db.Column(
        db.Integer, db.ForeignKey("customer_packages.customer_package_id"), nullable=False
    )
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    customer_package = db.relationship("CustomerPackage", back_populates="services")


class Appointment(db.Model):
    """A booking whose service and product lines carry price snapshots."""

    __tablename__ = "appointments"

    appointment_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.branch_id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.customer_id"), nullable=False)
    appointment_date = db.Column(db.DateTime, nullable=True)
    appointment_time = db.Column(db.String(20))
    status = db.Column(
        db.Enum(
            "upcoming",
            "checked-in",
            "check-out",
            "cancelled",
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="upcoming",
    )
    payment_status = db.Column(
        db.Enum("Pending", "Paid", name="payment_status", native_enum=False, validate_strings=True),
        nullable=False,
        server_default="Pending",
    )
    total_payment = db.Column(Money, nullable=False, default=Decimal("0"))
    grand_total = db.Column(Money, nullable=True)
    notes = db.Column(db.Text)
    order_code = db.Column(db.String(40))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    customer = db.relationship("Customer")
    branch = db.relationship("Branch")
    salon = db.relationship("Salon")
    services = db.relationship(
        "AppointmentService",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentService.id",
    )
    products = db.relationship(
        "AppointmentProduct",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentProduct.id",
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.appointment_id,
            "salon_id": self.salon_id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "customer": self.customer.to_dict() if self.customer else None,
            "appointment_date": _iso(self.appointment_date),
            "appointment_time": self.appointment_time,
            "status": self.status,
            "payment_status": self.payment_status,
            "total_payment": _money(self.total_payment),
            "grand_total": _money(self.grand_total),
            "notes": self.notes,
            "order_code": self.order_code,
            "services": [line.to_dict() for line in self.services],
            "products": [line.to_dict() for line in self.products],
            "created_at": _iso(self.created_at),
        }


class AppointmentService(db.Model):
    __tablename__ = "appointment_services"

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(
        db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=False
    )
    service_id = db.Column(db.Integer, db.ForeignKey("services.service_id"), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=True)
    service_amount = db.Column(Money, nullable=False, default=Decimal("0"))
    used_package = db.Column(db.Boolean, nullable=False, default=False)
    customer_package_id = db.Column(
        db.Integer, db.ForeignKey("customer_packages.customer_package_id"), nullable=True
    )
    commission_earned = db.Column(Money, nullable=False, default=Decimal("0"))
    # One-way flag: set by a staff payout and never cleared.
    paid = db.Column(db.Boolean, nullable=False, default=False)

    appointment = db.relationship("Appointment", back_populates="services")
    service = db.relationship("Service")
    staff = db.relationship("Staff")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else None,
            "staff_id": self.staff_id,
            "service_amount": _money(self.service_amount),
            "used_package": bool(self.used_package),
            "customer_package_id": self.customer_package_id,
            "commission_earned": _money(self.commission_earned),
            "paid": bool(self.paid),
        }


class AppointmentProduct(db.Model):
    __tablename__ = "appointment_products"

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(
        db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=False
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.product_id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.variant_id"), nullable=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=True)
    name = db.Column(db.String(150))
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(Money, nullable=False, default=Decimal("0"))
    total_price = db.Column(Money, nullable=False, default=Decimal("0"))

    appointment = db.relationship("Appointment", back_populates="products")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "staff_id": self.staff_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "total_price": _money(self.total_price),
        }


class Payment(db.Model):
    """Settlement of one appointment. Immutable apart from ``invoice_file_name``."""

    __tablename__ = "payments"

    payment_id = db.Column(db.Integer, primary_key=True)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.branch_id"), nullable=True)
    # At most one settlement per appointment
    appointment_id = db.Column(
        db.Integer, db.ForeignKey("appointments.appointment_id"), nullable=False, unique=True
    )
    service_amount = db.Column(Money, nullable=False, default=Decimal("0"))
    product_amount = db.Column(Money, nullable=False, default=Decimal("0"))
    additional_charges = db.Column(Money, nullable=False, default=Decimal("0"))
    membership_discount = db.Column(Money, nullable=False, default=Decimal("0"))
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.coupon_id"), nullable=True)
    coupon_discount = db.Column(Money, nullable=False, default=Decimal("0"))
    additional_discount_type = db.Column(
        db.Enum("percentage", "flat", name="additional_discount_type", native_enum=False, validate_strings=True),
        nullable=False,
        server_default="flat",
    )
    additional_discount_value = db.Column(Money, nullable=False, default=Decimal("0"))
    additional_discount = db.Column(Money, nullable=False, default=Decimal("0"))
    sub_total = db.Column(Money, nullable=False, default=Decimal("0"))
    tax_id = db.Column(db.Integer, db.ForeignKey("taxes.tax_id"), nullable=True)
    tax_amount = db.Column(Money, nullable=False, default=Decimal("0"))
    tips = db.Column(Money, nullable=False, default=Decimal("0"))
    final_total = db.Column(Money, nullable=False)
    payment_method = db.Column(
        db.Enum("Cash", "Card", "UPI", "Split", name="payment_method", native_enum=False, validate_strings=True),
        nullable=False,
    )
    invoice_file_name = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    appointment = db.relationship("Appointment")
    splits = db.relationship(
        "PaymentSplit", back_populates="payment", cascade="all, delete-orphan", order_by="PaymentSplit.id"
    )

    @property
    def total_discount(self) -> Decimal:
        return self.membership_discount + self.coupon_discount + self.additional_discount

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.payment_id,
            "salon_id": self.salon_id,
            "branch_id": self.branch_id,
            "appointment_id": self.appointment_id,
            "service_amount": _money(self.service_amount),
            "product_amount": _money(self.product_amount),
            "additional_charges": _money(self.additional_charges),
            "membership_discount": _money(self.membership_discount),
            "coupon_id": self.coupon_id,
            "coupon_discount": _money(self.coupon_discount),
            "additional_discount_type": self.additional_discount_type,
            "additional_discount_value": _money(self.additional_discount_value),
            "additional_discount": _money(self.additional_discount),
            "sub_total": _money(self.sub_total),
            "tax_id": self.tax_id,
            "tax_amount": _money(self.tax_amount),
            "tips": _money(self.tips),
            "final_total": _money(self.final_total),
            "payment_method": self.payment_method,
            "payment_split": [split.to_dict() for split in self.splits],
            "invoice_file_name": self.invoice_file_name,
            "created_at": _iso(self.created_at),
        }


class PaymentSplit(db.Model):
    __tablename__ = "payment_splits"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.payment_id"), nullable=False)
    method = db.Column(db.String(30), nullable=False)
    amount = db.Column(Money, nullable=False)

    payment = db.relationship("Payment", back_populates="splits")

    def to_dict(self) -> dict[str, object]:
        return {"method": self.method, "amount": _money(self.amount)}


class StaffEarning(db.Model):
    """Running earning snapshot; ``earning_start_date`` is the payout watermark."""

    __tablename__ = "staff_earnings"
    __table_args__ = (db.UniqueConstraint("staff_id", "salon_id", name="uq_staff_earning_staff_salon"),)

    id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=False)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    total_booking = db.Column(db.Integer, nullable=False, default=0)
    service_amount = db.Column(Money, nullable=False, default=Decimal("0"))
    commission_earning = db.Column(Money, nullable=False, default=Decimal("0"))
    tip_earning = db.Column(Money, nullable=False, default=Decimal("0"))
    staff_earning = db.Column(Money, nullable=False, default=Decimal("0"))
    earning_start_date = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class StaffPayout(db.Model):
    __tablename__ = "staff_payouts"

    payout_id = db.Column(db.Integer, primary_key=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.staff_id"), nullable=False)
    salon_id = db.Column(db.Integer, db.ForeignKey("salons.salon_id"), nullable=False)
    commission = db.Column(Money, nullable=False, default=Decimal("0"))
    tips = db.Column(Money, nullable=False, default=Decimal("0"))
    salary = db.Column(Money, nullable=False, default=Decimal("0"))
    total_pay = db.Column(Money, nullable=False, default=Decimal("0"))
    payment_method = db.Column(db.String(30), nullable=False)
    description = db.Column(db.Text)
    date = db.Column(db.DateTime, nullable=False, default=utc_now)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    staff = db.relationship("Staff")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.payout_id,
            "staff_id": self.staff_id,
            "staff_name": self.staff.full_name if self.staff else None,
            "salon_id": self.salon_id,
            "commission": _money(self.commission),
            "tips": _money(self.tips),
            "salary": _money(self.salary),
            "total_pay": _money(self.total_pay),
            "payment_method": self.payment_method,
            "description": self.description,
            "date": _iso(self.date),
        }
