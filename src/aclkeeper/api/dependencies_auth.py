from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status, Header, Request
from sqlalchemy.orm import Session

from aclkeeper.api.database import get_db
from aclkeeper.api.resources import (
    ResourceLookupRegistry,
    UnknownResourceTypeError,
    get_resource_lookups,
)
from aclkeeper.access_control.exceptions import PermissionValidationError
from aclkeeper.access_control.permissions import validate_required_permission, validate_resource_type
from aclkeeper.access_control.service import PermissionService
from aclkeeper.platform.config import settings
from aclkeeper.platform.logging import bind_request_context, get_logger
from aclkeeper.platform.metrics import guard_decisions_total

logger = get_logger(__name__)

# Authentication happens upstream; the gateway forwards the caller's identity
USER_ID_HEADER = "X-User-ID"
USER_ROLE_HEADER = "X-User-Role"


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    role: Optional[str] = None


@dataclass(frozen=True)
class ResourceAccess:
    """Outcome of a successful guard check, also stored on ``request.state``."""
    resource_type: str
    resource_id: str
    external_id: str
    user: AuthenticatedUser
    # author | admin | acl
    granted_by: str


def get_permission_service() -> PermissionService:
    return PermissionService()


def get_current_user(
    x_user_id: Annotated[Optional[str], Header(alias=USER_ID_HEADER)] = None,
    x_user_role: Annotated[Optional[str], Header(alias=USER_ROLE_HEADER)] = None,
) -> Optional[AuthenticatedUser]:
    """
    Identity of the caller as forwarded by the gateway.
    Returns None for anonymous requests.
    """
    if not x_user_id or not x_user_id.strip():
        return None
    return AuthenticatedUser(id=x_user_id.strip(), role=(x_user_role or None))


def require_current_user(
    user: Annotated[Optional[AuthenticatedUser], Depends(get_current_user)]
) -> AuthenticatedUser:
    """Enforce that a user is authenticated."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return user


class ResourceAccessChecker:
    """
    Callable dependency guarding a single resource.

    Checks run in a fixed order: authentication (401), resource lookup (404),
    author or admin bypass, then the ACL check (403).
    """

    def __init__(
        self,
        required_permission: int,
        resource_type: Optional[str] = None,
        resource_id_param: str = "id",
        resource_type_param: str = "resource_type",
        admin_role: Optional[str] = None,
    ):
        self.required_permission = validate_required_permission(required_permission)
        self.resource_type = resource_type
        self.resource_id_param = resource_id_param
        self.resource_type_param = resource_type_param
        self.admin_role = admin_role

    def __call__(
        self,
        request: Request,
        user: Annotated[Optional[AuthenticatedUser], Depends(get_current_user)],
        db: Annotated[Session, Depends(get_db)],
        service: Annotated[PermissionService, Depends(get_permission_service)],
        lookups: Annotated[ResourceLookupRegistry, Depends(get_resource_lookups)],
    ) -> ResourceAccess:
        resource_type = self.resource_type or request.path_params.get(self.resource_type_param)
        external_id = request.path_params.get(self.resource_id_param)

        if not user:
            guard_decisions_total.labels(resource_type=resource_type or "", decision="unauthenticated").inc()
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required"
            )

        if not resource_type or not external_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Missing {self.resource_type_param if not resource_type else self.resource_id_param}"
            )

        try:
            validate_resource_type(resource_type)
        except PermissionValidationError as e:
            guard_decisions_total.labels(resource_type="", decision="invalid").inc()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        try:
            resource = lookups.lookup(db, resource_type, external_id)
        except UnknownResourceTypeError as e:
            logger.error("Resource guard misconfigured", resource_type=resource_type, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Resource lookup not configured"
            )

        if resource is None:
            guard_decisions_total.labels(resource_type=resource_type, decision="not_found").inc()
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"{resource_type} not found"
            )

        bind_request_context(user_id=user.id, resource_type=resource_type, resource_id=resource.resource_id)
        admin_role = self.admin_role or settings.ADMIN_ROLE
        if resource.author_id is not None and resource.author_id == user.id:
            granted_by = "author"
        elif user.role == admin_role:
            granted_by = "admin"
        else:
            try:
                allowed = service.check_permission(
                    db, user.id, user.role, resource_type, resource.resource_id, self.required_permission
                )
            except PermissionValidationError as e:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

            if not allowed:
                guard_decisions_total.labels(resource_type=resource_type, decision="forbidden").inc()
                logger.info(
                    "Resource access denied",
                    user_id=user.id,
                    resource_type=resource_type,
                    resource_id=resource.resource_id,
                    required_permission=self.required_permission,
                )
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Insufficient permissions to access this {resource_type}"
                )
            granted_by = "acl"

        guard_decisions_total.labels(resource_type=resource_type, decision=granted_by).inc()
        access = ResourceAccess(
            resource_type=resource_type,
            resource_id=resource.resource_id,
            external_id=external_id,
            user=user,
            granted_by=granted_by,
        )
        request.state.resource_access = access
        return access


def require_resource_access(
    required_permission: int,
    resource_type: Optional[str] = None,
    resource_id_param: str = "id",
    resource_type_param: str = "resource_type",
) -> ResourceAccessChecker:
    """Factory for a resource guard dependency."""
    return ResourceAccessChecker(
        required_permission,
        resource_type=resource_type,
        resource_id_param=resource_id_param,
        resource_type_param=resource_type_param,
    )
