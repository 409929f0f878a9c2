from .core_routes import core
from .admin_routes import admin_bp
from .donation_routes import donations_bp
from .recurring_routes import recurring_bp
from .currency_routes import currencies_bp
from .payment_method_routes import payment_methods_bp
from .webhook_routes import webhooks_bp
from .receipt_routes import receipts_bp

__all__ = [
    "core",
    "admin_bp",
    "donations_bp",
    "recurring_bp",
    "currencies_bp",
    "payment_methods_bp",
    "webhooks_bp",
    "receipts_bp",
]
