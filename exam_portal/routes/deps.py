"""Shared route dependencies: services, current user and role guards."""

from typing import Callable

from fastapi import Depends, HTTPException, Request

from ..config.settings import settings
from ..models import User
from ..services import ExamServices
from ..services.access import normalize_role
from ..utils import as_utc


def get_services(request: Request) -> ExamServices:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized")
    return services


async def get_current_user(
    request: Request,
    services: ExamServices = Depends(get_services),
) -> User:
    """Get current user from session token"""
    session_token = request.cookies.get(settings.SESSION_COOKIE_NAME)

    if not session_token:
        auth_header = request.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            session_token = auth_header.split(" ")[1]

    if not session_token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session = await services.db.user_sessions.find_one(
        {"session_token": session_token},
        {"_id": 0}
    )

    if not session:
        raise HTTPException(status_code=401, detail="Invalid session")

    expires_at = as_utc(session.get("expires_at"))
    if expires_at is None or expires_at < services.clock():
        raise HTTPException(status_code=401, detail="Session expired")

    user = await services.db.users.find_one(
        {"user_id": session["user_id"]},
        {"_id": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    user["role"] = normalize_role(user.get("role"))
    return User(**user)


def require_role(*allowed: str) -> Callable:
    """Dependency factory: 403 unless the user's normalized role is allowed."""

    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=403, detail="Forbidden")
        return user

    return checker
