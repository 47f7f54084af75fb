"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/auth.py (to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

create_app() switches the limiter on or off from Settings.rate_limit_enabled
and points credential_limit() at Settings.login_rate_limit.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

_credential_limit = "10/minute"


def configure_limiter(enabled: bool, credential_limit: str) -> None:
    global _credential_limit
    limiter.enabled = enabled
    _credential_limit = credential_limit


def credential_limit() -> str:
    """Limit string for login/register, resolved per request."""
    return _credential_limit
