# Utils/auth_decorator.py
from functools import wraps
from flask import request
from bson import ObjectId
from Utils.jwt_utils import decode_token
from Utils.appError import AuthError, ForbiddenError
from Models.userModel import User


def _extract_token():
    auth_header = request.headers.get("Authorization")
    token = None

    # Prefer Authorization header if present and well-formed
    if auth_header:
        try:
            token_type, token_val = auth_header.split(" ")
            if token_type.lower() == "bearer" and token_val:
                token = token_val
        except ValueError:
            pass

    # Fallback to cookies
    if not token:
        token = request.cookies.get("access_token")
    return token


def current_user_optional():
    """Return the authenticated user if a valid token is present, else None."""
    token = _extract_token()
    if not token:
        return None
    decoded = decode_token(token)
    if not decoded or not ObjectId.is_valid(decoded.get("user_id", "")):
        return None
    user = User.objects(id=decoded["user_id"]).first()
    if not user or not user.is_active:
        return None
    return user


def token_required(f):
    """Ensure that a valid JWT is present and pass the user as first argument."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = _extract_token()
        if not token:
            raise AuthError("Authorization token missing")

        decoded = decode_token(token)
        if not decoded or not ObjectId.is_valid(decoded.get("user_id", "")):
            raise AuthError("Invalid or expired token")

        user = User.objects(id=decoded["user_id"]).first()
        if not user or not user.is_active:
            raise AuthError("User not found or account is inactive")

        return f(user, *args, **kwargs)

    return decorated


def roles_required(*allowed_roles):
    """
    Restrict access to users with specific roles.
    Example:
        @roles_required("admin")
        def approve_order(user, order_id): ...
    """
    def wrapper(f):
        @wraps(f)
        @token_required
        def decorated(user, *args, **kwargs):
            if user.role not in allowed_roles:
                raise ForbiddenError(
                    f"Access denied. Requires role(s): {', '.join(allowed_roles)}"
                )
            return f(user, *args, **kwargs)

        return decorated
    return wrapper
