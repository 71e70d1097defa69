"""
Guard functions composed around every engine operation.

Routes call them explicitly and in order:
authenticate -> authorize -> rate-limit -> execute.
"""

from typing import Optional

from fastapi import Request

from shared.logging import get_logger, set_caller_context
from shared.errors import AuthenticationError
from ..features.models import Caller, Operation
from ..ratelimit.limiter import OperationRateLimiter
from ..service import EntitlementService

# Identity forwarded by the gateway after token validation
USER_ID_HEADER = "X-User-Id"
USER_EMAIL_HEADER = "X-User-Email"

logger = get_logger("entitlements.guards")


def authenticate_optional(request: Request) -> Optional[Caller]:
    """Resolve the caller from forwarded identity headers, if present."""
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    email = (request.headers.get(USER_EMAIL_HEADER) or "").strip()
    if not user_id or not email:
        return None

    set_caller_context(user_id=user_id)
    return Caller(user_id=user_id, email=email)


def authenticate(request: Request) -> Caller:
    """Resolve the caller, or raise AuthenticationError."""
    caller = authenticate_optional(request)
    if caller is None:
        logger.warning("Missing caller identity", path=request.url.path)
        raise AuthenticationError(
            f"{USER_ID_HEADER} and {USER_EMAIL_HEADER} headers required"
        )
    return caller


def authorize(service: EntitlementService, caller: Caller, operation: Operation,
              target_user_id: Optional[str] = None) -> None:
    set_caller_context(operation=operation.value)
    service.authorize(caller, operation, target_user_id)


async def rate_limit(limiter: Optional[OperationRateLimiter], request: Request,
                     caller: Optional[Caller], operation: Operation) -> None:
    """Count the call against the caller's limit for ``operation``.

    Anonymous callers are scoped by client address.
    """
    if limiter is None:
        return

    if caller is not None:
        scope = caller.user_id
    else:
        scope = f"ip:{request.client.host if request.client else 'unknown'}"

    await limiter.enforce(scope, operation.value)
