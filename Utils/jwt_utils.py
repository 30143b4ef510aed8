import jwt
from datetime import datetime, timedelta, timezone
from flask import current_app

JWT_ALGORITHM = "HS256"


def _secret(secret=None):
    return secret or current_app.config["JWT_SECRET"]


def create_access_token(user_id, role, secret=None, expires_in_minutes=60):
    """
    Generate a JWT access token for a user.

    Tokens are normally issued by the auth service; this is used by tooling and tests.
    """
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": str(user_id),
        "role": role,
        "exp": now + timedelta(minutes=expires_in_minutes),
        "iat": now
    }
    return jwt.encode(payload, _secret(secret), algorithm=JWT_ALGORITHM)


def decode_token(token, secret=None):
    """
    Verify and decode a JWT token.
    Returns payload dict if valid, or None if invalid/expired.
    """
    try:
        return jwt.decode(token, _secret(secret), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
