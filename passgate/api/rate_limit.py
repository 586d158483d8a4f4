"""Rate limiting configuration for API endpoints.

Provides a shared Limiter instance that route modules import to apply
per-endpoint limits.

Rate limit tiers:
- Global default: 60/minute per IP
- Login: 10/minute (password and passkey sign-in)
- Ceremony: 20/minute (option issuance and registration)

Usage in route modules:
    from passgate.api.rate_limit import limiter

    @router.post("/passkey/authenticate/options")
    @limiter.limit(CEREMONY_LIMIT)
    async def passkey_authenticate_options(request: Request, ...):
        ...
"""

from slowapi import Limiter
from starlette.requests import Request

LOGIN_LIMIT = "10/minute"
CEREMONY_LIMIT = "20/minute"


def _get_real_client_ip(request: Request) -> str:
    """Extract the real client IP, respecting X-Forwarded-For from trusted proxies.

    When running behind a reverse proxy the direct client IP is the proxy.
    X-Forwarded-For contains the real client IP as the first entry.

    Args:
        request: Starlette/FastAPI request object.

    Returns:
        Client IP address string.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "127.0.0.1"


# Shared rate limiter instance
limiter = Limiter(
    key_func=_get_real_client_ip,
    default_limits=["60/minute"],
)

# Maximum request body size (bytes). Attestation objects are a few KB;
# anything near this limit is not a WebAuthn response.
MAX_REQUEST_BODY_BYTES = 65_536
