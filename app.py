import os
import atexit

from flask import Flask, jsonify
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from Controllers.errorController import error_bp
from Controllers.paymentController import cashfree_webhook
from Routes.adminRoutes import admin_routes
from Routes.cartRoutes import cart_routes
from Routes.couponRoutes import coupon_routes
from Routes.orderRoutes import order_routes
from Routes.paymentRoutes import payment_routes
from Routes.productRoutes import product_routes
from Routes.wishlistRoutes import wishlist_routes
from Utils.cashfree import CashfreeClient
from Utils.config import Settings
from Utils.db import init_db, close_db
from Utils.logger import setup_logging


def create_app(settings: Settings | None = None, init_database: bool = True, cashfree_transport=None):
    """Build the Flask app.

    Tests pass their own Settings, skip the real database connection and
    hand in an httpx transport for the gateway.
    """
    settings = settings or Settings.from_env()

    # ----------------------------
    # Flask app configuration
    # ----------------------------
    app = Flask(__name__)
    app.secret_key = settings.secret_key
    app.config['JWT_SECRET'] = settings.jwt_secret
    app.config['SETTINGS'] = settings
    app.config['TESTING'] = settings.testing
    app.config['RATELIMIT_ENABLED'] = not settings.testing
    app.config['RATELIMIT_STORAGE_URI'] = settings.ratelimit_storage_uri

    setup_logging(app, settings)

    # ----------------------------
    # Database
    # ----------------------------
    if init_database:
        init_db(settings.mongodb_uri)
        atexit.register(close_db)

    # ----------------------------
    # Payment gateway
    # ----------------------------
    app.extensions['cashfree'] = CashfreeClient(settings.cashfree, transport=cashfree_transport)
    if not settings.cashfree.is_configured:
        app.logger.warning("Cashfree credentials missing; online payments will fail until configured")

    # ----------------------------
    # Register blueprints
    # ----------------------------
    app.register_blueprint(error_bp)
    app.register_blueprint(order_routes)
    app.register_blueprint(payment_routes)
    app.register_blueprint(cart_routes)
    app.register_blueprint(coupon_routes)
    app.register_blueprint(admin_routes)
    app.register_blueprint(product_routes)
    app.register_blueprint(wishlist_routes)

    # ----------------------------
    # Rate Limiter
    # ----------------------------
    limiter = Limiter(
        get_remote_address,
        app=app,
        default_limits=list(settings.rate_limits),
    )
    # Gateway retries must never be throttled
    limiter.exempt(cashfree_webhook)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok', 'env': settings.env})

    return app


# ----------------------------
# Run the app
# ----------------------------
if __name__ == '__main__':
    app = create_app()
    port = int(os.getenv('PORT', 4000))
    app.logger.info(f"App running on port {port}...")
    app.run(host='0.0.0.0', port=port, debug=False)
