"""Double-submit CSRF tokens.

A token is "<nonce>.<hmac>" where the HMAC covers the nonce and the session
token, keyed by SESSION_SECRET. The client receives it twice: in an
HttpOnly cookie and in the /api/csrf-token response body. State-changing
requests that ride on the session cookie must echo it in X-CSRF-Token; the
header must match the cookie and the HMAC must match the caller's session.
"""

import hashlib
import hmac
import secrets

from tablegrid.core.config import settings

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def _signature(nonce: str, session_id: str) -> str:
    message = f"{nonce}.{session_id}".encode()
    return hmac.new(settings.session_secret.encode(), message, hashlib.sha256).hexdigest()


def issue_csrf_token(session_id: str) -> str:
    nonce = secrets.token_urlsafe(16)
    return f"{nonce}.{_signature(nonce, session_id)}"


def verify_csrf_token(
    session_id: str, header_token: str | None, cookie_token: str | None
) -> bool:
    if not header_token or not cookie_token:
        return False
    if not hmac.compare_digest(header_token, cookie_token):
        return False
    nonce, _, signature = header_token.partition(".")
    if not nonce or not signature:
        return False
    return hmac.compare_digest(signature, _signature(nonce, session_id))
