from slowapi import Limiter

from app.core.config import settings
from app.services.rate_limit import get_client_ip

# Coarse per-IP request ceiling for the whole API; the stricter attempt
# limiter for credential endpoints lives in app.services.rate_limit.
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[settings.rate_limit_global],
    headers_enabled=False,
    enabled=settings.env.lower() != "test",
)
