"""Shared FastAPI dependencies: explicit auth context and the payment gateway."""

from beanie import PydanticObjectId
from fastapi import Depends, Request
from pydantic import BaseModel

from nguvuhire.core.exceptions import ForbiddenError, UnauthorizedError
from nguvuhire.core.security import load_session_cookie
from nguvuhire.models.user import User
from nguvuhire.services.pesapal import PesapalClient

SESSION_COOKIE_NAME = "nguvuhire_session"


class AuthContext(BaseModel):
    """Caller identity passed explicitly into every handler."""
    user_id: str
    role: str = "job_seeker"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def _resolve_auth(request: Request) -> AuthContext:
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id or not PydanticObjectId.is_valid(user_id):
        raise UnauthorizedError("Invalid session")
    user = await User.get(PydanticObjectId(user_id))
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    return AuthContext(user_id=str(user.id), role=user.role)


async def get_auth_context(request: Request) -> AuthContext:
    """Dependency: require a valid session cookie."""
    return await _resolve_auth(request)


async def get_optional_auth_context(request: Request) -> AuthContext | None:
    """Dependency: like get_auth_context but anonymous callers get None."""
    try:
        return await _resolve_auth(request)
    except UnauthorizedError:
        return None


async def require_admin(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not auth.is_admin:
        raise ForbiddenError("Admin only")
    return auth


def get_gateway() -> PesapalClient:
    """Dependency: Pesapal client from settings. Overridden in tests."""
    return PesapalClient.from_settings()
