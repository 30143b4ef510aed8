import logging
from urllib.parse import urlparse

from mongoengine import connect, disconnect

logger = logging.getLogger(__name__)


def init_db(mongo_uri: str, **connect_kwargs):
    """Open the default mongoengine connection for the given URI."""
    # Auto-detect DB name from URI
    parsed = urlparse(mongo_uri)
    db_name = (parsed.path or "").lstrip("/") or "bloomtales_db"

    try:
        conn = connect(
            db=db_name,
            host=mongo_uri,
            alias="default",
            **connect_kwargs
        )
        logger.info(f"✅ MongoDB connected successfully → {db_name}")
        return conn
    except Exception as e:
        logger.error(f"❌ MongoDB connection error: {e}")
        raise


def close_db():
    """Close the default connection; pending operations finish before the client closes."""
    disconnect(alias="default")
    logger.info("MongoDB connection closed")
