import hashlib
import hmac
import time
from urllib.parse import urlencode


def _sign(secret_key: str, resource: str, expires: int) -> str:
    """Create HMAC-SHA256 signature for a preview resource path."""
    message = f"{resource}:{expires}"
    return hmac.new(
        secret_key.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def signed_url(
    secret_key: str,
    base_url: str,
    resource: str,
    *,
    ttl_seconds: int,
    now: int | None = None,
) -> str:
    expires = int(now if now is not None else time.time()) + ttl_seconds
    query = urlencode({"expires": expires, "signature": _sign(secret_key, resource, expires)})
    return f"{base_url.rstrip('/')}/{resource.lstrip('/')}?{query}"


def verify_signature(
    secret_key: str,
    resource: str,
    expires: int,
    signature: str,
    *,
    now: int | None = None,
) -> bool:
    """Verify HMAC signature and expiry for a signed URL.

    Returns False if the signature is invalid or the URL has expired.
    """
    current = int(now if now is not None else time.time())
    if current > expires:
        return False
    expected = _sign(secret_key, resource, expires)
    return hmac.compare_digest(expected, signature)
