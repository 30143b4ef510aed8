from hashids import Hashids
from datetime import datetime, timezone
import os
import secrets

# Centralized Hashids instance for generating order numbers
HASHIDS_SALT = os.getenv('HASHIDS_SALT', 'bloomtales-default-salt')
HASHIDS_MIN_LENGTH = int(os.getenv('HASHIDS_MIN_LENGTH', 8))
HASHIDS_ALPHABET = os.getenv(
    'HASHIDS_ALPHABET',
    'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
)

hashids = Hashids(salt=HASHIDS_SALT, min_length=HASHIDS_MIN_LENGTH, alphabet=HASHIDS_ALPHABET)


def generate_order_number(now: datetime | None = None) -> str:
    """Build a human-readable order number such as BT-20261019-7KQ2M9XA4P.

    The token encodes the millisecond timestamp plus a random component, so two
    orders placed in the same millisecond still get different numbers.
    """
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    token = hashids.encode(millis, secrets.randbelow(100000))
    return f"BT-{now:%Y%m%d}-{token}"