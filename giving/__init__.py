# giving/__init__.py
import os
import logging
from datetime import timedelta

from flask import Flask, jsonify
from dotenv import load_dotenv
from flask_jwt_extended import JWTManager

from giving.routes import (
    core,
    admin_bp,
    donations_bp,
    recurring_bp,
    currencies_bp,
    payment_methods_bp,
    webhooks_bp,
    receipts_bp,
)
from giving.services.exceptions import GivingServiceError
from giving.services.factory import build_services
from giving.utils.log import configure_logging

load_dotenv(dotenv_path=".env")

logger = logging.getLogger(__name__)


def create_app(services=None, config=None):
    configure_logging()

    app = Flask(__name__)
    app.url_map.strict_slashes = False

    # JWT (issued by the accounts service; verified here)
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET", "dev-secret")
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_NAME"] = "Authorization"
    app.config["JWT_HEADER_TYPE"] = "Bearer"
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(minutes=15)
    if config:
        app.config.update(config)
    JWTManager(app)

    if services is None:
        from giving.tasks import enqueue_recurring_cycle

        services = build_services(
            enqueue_cycle=lambda rid: enqueue_recurring_cycle(rid, app.extensions["giving"])
        )
    app.extensions["giving"] = services

    @app.errorhandler(GivingServiceError)
    def _service_error(e):
        if e.status_code >= 500:
            logger.warning("%s: %s", type(e).__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(422)
    def _unprocessable(e):
        return {"error": "unprocessable request"}, 422

    @app.get("/__ping")
    def __ping():
        return {"ok": True}, 200

    app.register_blueprint(core)
    app.register_blueprint(admin_bp)
    app.register_blueprint(donations_bp, url_prefix="/api/donations")
    app.register_blueprint(recurring_bp, url_prefix="/api/donations/recurring")
    app.register_blueprint(currencies_bp, url_prefix="/api/currencies")
    app.register_blueprint(payment_methods_bp, url_prefix="/api/payment-methods")
    app.register_blueprint(webhooks_bp, url_prefix="/api")
    app.register_blueprint(receipts_bp, url_prefix="/api")

    logger.debug("URL map:\n%s", "\n".join(str(r) for r in app.url_map.iter_rules()))
    return app
