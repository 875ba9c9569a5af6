from fastapi import APIRouter, Depends, Request, Response

from bruteguard.core.auth import verify_credentials
from bruteguard.core.errors import InvalidCredentialsError
from bruteguard.core.throttle import (
    enforce_throttle,
    get_guard,
    get_throttle_context,
    throttle_dependency,
    throttled_error,
)
from bruteguard.schemas.auth import LoginRequest, LoginResponse
from bruteguard.throttle.context import ThrottleContext

router = APIRouter(tags=["Auth"])

# One guard per client address, one per account regardless of address.
IP_GUARD = "login-ip"
USER_GUARD = "login-user"


def _username_key(identity: str | None, context: ThrottleContext) -> str | None:
    return context.values.get("username")


@router.post(
    "/auth/login",
    response_model=LoginResponse,
    dependencies=[Depends(throttle_dependency(IP_GUARD))],
)
async def login(payload: LoginRequest, request: Request, response: Response) -> LoginResponse:
    """Authenticate a user behind both brute-force guards.

    Every attempt counts against the caller's address and the submitted
    username. A successful login clears both counters through the request's
    reset chain. An attempt flagged by the "mark" policy is processed but
    never authenticated.

    Raises:
        RequestThrottledError: If either guard rejects or flags the attempt.
        InvalidCredentialsError: If the credentials do not match.
    """
    context = get_throttle_context(request)
    context.values["username"] = payload.username
    user_entry = get_guard(USER_GUARD).get_middleware(key=_username_key, ignore_identity=True)
    await enforce_throttle(user_entry, request, response)

    if context.denied:
        raise throttled_error(context)

    if not verify_credentials(payload.username, payload.password):
        raise InvalidCredentialsError(
            code="invalid_credentials",
            message="Invalid username or password",
        )

    await context.reset()
    return LoginResponse(authenticated=True, username=payload.username)
