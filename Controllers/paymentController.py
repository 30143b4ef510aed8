import json
import logging
from flask import request, jsonify, current_app

from Controllers.orderController import checkout_response
from Utils import order_workflow as workflow
from Utils.appError import AuthError, ValidationError
from Utils.auth_decorator import token_required, roles_required
from Utils.cashfree import verify_webhook_signature
from Utils.schemas import parse_body, PaymentSessionRequest, RefundRequest

logger = logging.getLogger("payments")


def _gateway():
    return current_app.extensions["cashfree"]


def _cashfree_config():
    return current_app.config["SETTINGS"].cashfree


# ============================
# Payment session
# ============================
@token_required
def create_payment_session(user):
    """Place an order from the caller's cart and open a gateway session for it."""
    data = parse_body(PaymentSessionRequest)
    order = workflow.place_order(user, data, client=_gateway(), config=_cashfree_config())
    return checkout_response(order)


# ============================
# Webhook for server-side confirmation
# ============================
def cashfree_webhook():
    raw_body = request.get_data(cache=True)
    signature = request.headers.get('x-webhook-signature')
    timestamp = request.headers.get('x-webhook-timestamp')

    if not verify_webhook_signature(raw_body, signature, timestamp, _cashfree_config().webhook_secret):
        logger.warning(f"Webhook rejected: invalid signature from {request.remote_addr}")
        raise AuthError("Invalid webhook signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    outcome = workflow.reconcile_webhook(payload)
    return jsonify({'received': True, 'result': outcome}), 200


# ============================
# Verify after redirect
# ============================
def verify_payment(order_number):
    order = workflow.verify_payment(order_number, _gateway())
    return jsonify({
        'success': True,
        'data': {'order': order.to_json(), 'payment_status': order.payment_status}
    })


# ============================
# Refund
# ============================
@roles_required("admin")
def refund_payment(admin, order_id):
    data = parse_body(RefundRequest)
    order = workflow.refund(order_id, admin, _gateway(), data.note)
    return jsonify({
        'success': True,
        'message': 'Refund initiated',
        'data': {'order': order.to_json()}
    })
