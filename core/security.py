import base64
import hashlib
import hmac
import secrets
import time

from core.config import settings

_PBKDF2_ITERATIONS = 100_000


def _b64u_encode(data: bytes) -> str:
    """Base64-URL encode without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def hash_password(password: str, salt: str | None = None) -> str:
    """Hash a password with PBKDF2-HMAC-SHA256; returns "salt$hexdigest"."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), _PBKDF2_ITERATIONS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    salt, _, _ = hashed.partition("$")
    if not salt:
        return False
    return hmac.compare_digest(hash_password(password, salt), hashed)


def _sign(message: str) -> str:
    mac = hmac.new(settings.secret_key.encode(), message.encode(), hashlib.sha256).digest()
    return _b64u_encode(mac)


def create_access_token(user_id: int, ttl_hours: int | None = None) -> str:
    """
    Issue a signed bearer token.

    Format: "<user_id>.<expires_unix>.<signature>"
    """
    expires = int(time.time()) + 3600 * (ttl_hours if ttl_hours is not None else settings.token_ttl_hours)
    message = f"{user_id}.{expires}"
    return f"{message}.{_sign(message)}"


def decode_access_token(token: str) -> int | None:
    """
    Validate a bearer token.

    Returns:
        User ID if signature is valid and the token has not expired, None otherwise
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    user_id, expires, signature = parts
    if not hmac.compare_digest(_sign(f"{user_id}.{expires}"), signature):
        return None
    try:
        if int(expires) < time.time():
            return None
        return int(user_id)
    except ValueError:
        return None
