"""
Verification API Dependencies

Dependency injection for the status provider, the bulk orchestrator, and the
calling user. Authentication happens upstream; the gateway forwards the
resolved identity in X-User-* headers.
"""

from fastapi import Depends, Header, HTTPException, Request, status

from bulk.orchestrator import BulkOperationOrchestrator
from core.config import get_settings
from integrations.base import VerificationStatusProvider
from verification.capabilities import Role, UserContext, parse_role

settings = get_settings()

DEV_ADMIN_ID = "dev-admin"


def get_status_provider(request: Request) -> VerificationStatusProvider:
    return request.app.state.status_provider


def get_orchestrator(request: Request) -> BulkOperationOrchestrator:
    return request.app.state.orchestrator


async def get_current_user(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_entity_id: str | None = Header(default=None),
) -> UserContext:
    """Build the caller context from gateway headers. Debug mode assumes a dev admin."""
    if not x_user_id:
        if settings.debug:
            return UserContext(user_id=DEV_ADMIN_ID, role=Role.ADMIN)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    role = parse_role(x_user_role)
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unknown user role",
        )
    return UserContext(
        user_id=x_user_id,
        role=role,
        linked_entity_id=None if role == Role.ADMIN else x_entity_id,
    )


async def require_admin(user: UserContext = Depends(get_current_user)) -> UserContext:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Bulk operations require an administrator",
        )
    return user
