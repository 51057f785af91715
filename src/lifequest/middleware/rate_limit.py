"""General request rate limiting backed by the quota guard."""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from lifequest.dependencies import identity_from_request
from lifequest.errors import QuotaExceeded
from lifequest.middleware.error_handler import domain_error_response
from lifequest.quota.guard import GENERAL

# Paths exempt from rate limiting
_EXEMPT_PATHS = frozenset({"/health", "/ready"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply the ``general`` quota per user, session or client address."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Check the quota, return 429 if exceeded."""
        services = getattr(request.app.state, "services", None)
        if request.url.path in _EXEMPT_PATHS or services is None:
            return await call_next(request)

        identity = identity_from_request(request)
        decision = await services.quota.check(identity.key, GENERAL)
        if not decision.allowed:
            return domain_error_response(
                QuotaExceeded(GENERAL, decision.limit, decision.retry_after, decision.reset_at)
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        return response
