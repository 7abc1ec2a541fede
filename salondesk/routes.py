"""HTTP routes for the SalonDesk backend: health, auth and shared request helpers."""
from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, Flask, current_app, jsonify, request
from itsdangerous import BadSignature, URLSafeTimedSerializer
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import ValidationError
from .extensions import db
from .models import AuthAccount, Salon, User
from .parsing import parse_id

bp = Blueprint("api", __name__)

USER_ROLES = ("admin", "manager", "staff")


def register_routes(app: Flask) -> None:
    from .routes_appointments import bp_appointments
    from .routes_billing import bp_billing
    from .routes_catalog import bp_catalog

    app.register_blueprint(bp)
    app.register_blueprint(bp_catalog)
    app.register_blueprint(bp_appointments)
    app.register_blueprint(bp_billing)


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def require_salon_id(value) -> int:
    if value is None or value == "":
        raise ValidationError("salon_id is required")
    return parse_id(value, "salon_id")


def optional_id(value, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_id(value, field)


def parse_datetime(value, field: str) -> datetime | None:
    """Parse an ISO date or datetime from a request body into UTC.

    Naive values are taken as UTC; values with an offset are converted, since
    the columns store naive UTC.
    """
    if value is None or value == "":
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO date or datetime") from None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def database_error(exc: SQLAlchemyError, action: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", action, exc_info=exc)
    return jsonify({"error": "database_error", "message": str(exc)}), 500


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


def _build_token(payload: dict[str, object]) -> str:
    serializer = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="auth-token")
    return serializer.dumps(payload)


def get_jwt_identity() -> int | None:
    """Extract and validate user_id from the Authorization header token.

    Returns the user_id if the token is valid, None if missing, tampered or expired.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]
    serializer = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="auth-token")
    try:
        payload = serializer.loads(token, max_age=current_app.config["AUTH_TOKEN_MAX_AGE"])
    except BadSignature:
        return None
    return payload.get("user_id")


def _password_fingerprint(account: AuthAccount) -> str:
    return account.password_hash[-16:]


def build_reset_token(account: AuthAccount) -> str:
    """Signed reset token bound to the current password hash.

    Changing the password changes the fingerprint, so a token can be used once.
    """
    serializer = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="password-reset")
    return serializer.dumps({"user_id": account.user_id, "fp": _password_fingerprint(account)})


def send_password_reset(user: User, token: str) -> None:
    # No mail transport is configured; the reset token is only logged.
    current_app.logger.info("Password reset requested for user %s (token %s...)", user.user_id, token[:12])


@bp.post("/auth/register")
def register_user() -> tuple[dict[str, object], int]:
    """Register a dashboard user.
    ---
    tags:
      - Authentication
    responses:
      201:
        description: User registered successfully
      400:
        description: Invalid payload
      409:
        description: Email already exists
    """
    payload = json_body()

    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    role = (payload.get("role") or "manager").strip().lower()

    if not name or not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "name, email, and password are required"}),
            400,
        )

    if role not in USER_ROLES:
        return (
            jsonify({"error": "invalid_role", "message": "role must be 'admin', 'manager', or 'staff'"}),
            400,
        )

    salon_id = optional_id(payload.get("salon_id"), "salon_id")
    if salon_id is not None and db.session.get(Salon, salon_id) is None:
        return jsonify({"error": "not_found", "message": "Salon not found"}), 404

    if User.query.filter_by(email=email).first():
        return jsonify({"error": "conflict", "message": "email address is already in use"}), 409

    try:
        new_user = User(name=name, email=email, role=role, salon_id=salon_id)
        db.session.add(new_user)
        db.session.flush()

        db.session.add(AuthAccount(user_id=new_user.user_id, password_hash=generate_password_hash(password)))
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "register new user")

    token = _build_token({"user_id": new_user.user_id, "role": new_user.role})
    return jsonify({"token": token, "user": new_user.to_dict_basic()}), 201


@bp.post("/auth/login")
def login() -> tuple[dict[str, object], int]:
    """Authenticate a user by email/password and return an access token.
    ---
    tags:
      - Authentication
    responses:
      200:
        description: Login successful, returns access token
      400:
        description: Missing email or password
      401:
        description: Invalid email or password
    """
    payload = json_body()

    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return (
            jsonify({"error": "invalid_payload", "message": "email and password are required"}),
            400,
        )

    record = (
        db.session.query(User, AuthAccount)
        .join(AuthAccount, AuthAccount.user_id == User.user_id)
        .filter(User.email == email)
        .first()
    )
    if not record:
        return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

    user, auth_account = record
    if not check_password_hash(auth_account.password_hash, password):
        return jsonify({"error": "unauthorized", "message": "invalid email or password"}), 401

    auth_account.last_login_at = datetime.now(timezone.utc)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "update last login timestamp")

    token = _build_token({"user_id": user.user_id, "role": user.role})
    return jsonify({"token": token, "user": user.to_dict_basic()}), 200


@bp.get("/auth/me")
def current_user() -> tuple[dict[str, object], int]:
    user_id = get_jwt_identity()
    if user_id is None:
        return jsonify({"error": "unauthorized", "message": "valid bearer token required"}), 401

    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"error": "not_found", "message": "user not found"}), 404
    return jsonify({"user": user.to_dict_basic()}), 200


@bp.post("/auth/forgot-password")
def forgot_password() -> tuple[dict[str, object], int]:
    """Start a password reset. The response never reveals whether the email exists."""
    email = (json_body().get("email") or "").strip().lower()
    if not email:
        return jsonify({"error": "invalid_payload", "message": "email is required"}), 400

    user = User.query.filter_by(email=email).first()
    if user is not None and user.auth_account is not None:
        send_password_reset(user, build_reset_token(user.auth_account))

    return jsonify({"message": "If the account exists, a reset link has been sent"}), 200


@bp.post("/auth/reset-password")
def reset_password() -> tuple[dict[str, object], int]:
    payload = json_body()
    token = payload.get("token") or ""
    password = payload.get("password") or ""

    if not token or not password:
        return jsonify({"error": "invalid_payload", "message": "token and password are required"}), 400

    serializer = URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt="password-reset")
    try:
        data = serializer.loads(token, max_age=current_app.config["PASSWORD_RESET_MAX_AGE"])
    except BadSignature:
        return jsonify({"error": "invalid_token", "message": "reset token is invalid or expired"}), 400

    account = db.session.get(AuthAccount, data.get("user_id"))
    if account is None or data.get("fp") != _password_fingerprint(account):
        return jsonify({"error": "invalid_token", "message": "reset token is invalid or expired"}), 400

    try:
        account.password_hash = generate_password_hash(password)
        db.session.commit()
    except SQLAlchemyError as exc:
        return database_error(exc, "reset password")

    current_app.logger.info("Password reset completed for user %s", account.user_id)
    return jsonify({"message": "Password has been reset"}), 200
