from datetime import datetime, timezone

def utcnow() -> datetime:
    """Naive UTC now; every DateTime column in this service stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
