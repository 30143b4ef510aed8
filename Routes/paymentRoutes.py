from flask import Blueprint
from Controllers.paymentController import (
    create_payment_session, cashfree_webhook, verify_payment, refund_payment
)

payment_routes = Blueprint('payment_routes', __name__, url_prefix='/api/v1/payments')

payment_routes.add_url_rule('/session', view_func=create_payment_session, methods=['POST'])
# Signed by the gateway; no user token
payment_routes.add_url_rule('/webhook', view_func=cashfree_webhook, methods=['POST'])
payment_routes.add_url_rule('/verify/<order_number>', view_func=verify_payment, methods=['GET'])
payment_routes.add_url_rule('/<order_id>/refund', view_func=refund_payment, methods=['POST'])
