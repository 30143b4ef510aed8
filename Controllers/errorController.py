import logging
from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from Utils.appError import AppError

error_bp = Blueprint('errors', __name__)


@error_bp.app_errorhandler(AppError)
def handle_app_error(err):
    """Render operational errors as JSON."""
    current_app.logger.warning(f"AppError {err.status_code} at {request.path}: {err}")
    body = err.to_dict()
    upstream = getattr(err, "upstream", None)
    if upstream and current_app.config["SETTINGS"].expose_errors:
        body["detail"] = upstream
    return jsonify(body), err.status_code


@error_bp.app_errorhandler(404)
def not_found_error(e):
    current_app.logger.warning(
        f"404 Not Found: {request.url} | Method: {request.method} | IP: {request.remote_addr}"
    )
    return jsonify({"status": "fail", "message": "Resource not found"}), 404


@error_bp.app_errorhandler(405)
def method_not_allowed(e):
    return jsonify({"status": "fail", "message": f"Method {request.method} not allowed on {request.path}"}), 405


@error_bp.app_errorhandler(429)
def ratelimit_handler(e):
    logging.getLogger("access").warning(f"Rate limit exceeded by {request.remote_addr} on {request.path}")
    return jsonify({"status": "fail", "message": "Rate limit exceeded. Please slow down."}), 429


@error_bp.app_errorhandler(HTTPException)
def handle_http_exception(e):
    status = "fail" if e.code < 500 else "error"
    return jsonify({"status": status, "message": e.description}), e.code


@error_bp.app_errorhandler(Exception)
def handle_unexpected_error(e):
    """Catch-all for unexpected server errors; details only outside production."""
    current_app.logger.exception(
        f"Unexpected Application Error: {e} | URL: {request.url} | Method: {request.method} | IP: {request.remote_addr}"
    )
    body = {"status": "error", "message": "Something went wrong on the server."}
    if current_app.config["SETTINGS"].expose_errors:
        body["error"] = str(e)
    return jsonify(body), 500
