import os
from collections.abc import Mapping

from flask import Flask
from flask_cors import CORS

from .errors import register_error_handlers
from .extensions import db
from .routes import register_routes


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY", "dev-secret-key"),
        SQLALCHEMY_DATABASE_URI=os.environ.get("DATABASE_URL", "sqlite:///salondesk.db"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        INVOICE_DIR=os.environ.get("INVOICE_DIR", os.path.join(app.instance_path, "invoices")),
        AUTH_TOKEN_MAX_AGE=int(os.environ.get("AUTH_TOKEN_MAX_AGE", 86400)),
        PASSWORD_RESET_MAX_AGE=int(os.environ.get("PASSWORD_RESET_MAX_AGE", 900)),
    )

    if isinstance(config_object, Mapping):
        app.config.from_mapping(config_object)
    elif config_object:
        app.config.from_object(config_object)
    else:
        app.config.from_envvar("APP_SETTINGS", silent=True)

    db.init_app(app)

    # Allow the dashboard frontend to talk to the backend
    CORS(app,
         origins=["*"],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
    )

    register_error_handlers(app)
    register_routes(app)

    return app
