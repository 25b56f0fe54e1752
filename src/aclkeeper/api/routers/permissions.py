from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aclkeeper.access_control.exceptions import PermissionValidationError
from aclkeeper.access_control.models import AccessRole, BulkUpdateRequest, BulkUpdateResult
from aclkeeper.access_control.permissions import PermissionBits
from aclkeeper.access_control.service import PermissionService
from aclkeeper.api import schemas
from aclkeeper.api.database import get_db
from aclkeeper.api.dependencies_auth import (
    AuthenticatedUser,
    ResourceAccess,
    get_permission_service,
    require_current_user,
    require_resource_access,
)
from aclkeeper.api.resources import (
    ResourceLookupRegistry,
    UnknownResourceTypeError,
    get_resource_lookups,
)


router = APIRouter()

require_share_access = require_resource_access(
    required_permission=PermissionBits.SHARE,
    resource_id_param="resource_id",
)


# Per-type routes sit under /types so every resource id stays addressable
@router.get("/types/{resource_type}/roles", response_model=List[AccessRole])
def list_roles(
    resource_type: str,
    service: Annotated[PermissionService, Depends(get_permission_service)],
    session: Annotated[Session, Depends(get_db)],
    current_user: Annotated[AuthenticatedUser, Depends(require_current_user)],
):
    """
    Roles that can be granted on this resource type.
    """
    try:
        return service.get_available_roles(session, resource_type)
    except PermissionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/types/{resource_type}/accessible", response_model=schemas.AccessibleResourcesResponse)
def list_accessible_resources(
    resource_type: str,
    service: Annotated[PermissionService, Depends(get_permission_service)],
    session: Annotated[Session, Depends(get_db)],
    current_user: Annotated[AuthenticatedUser, Depends(require_current_user)],
    required_permission: int = Query(int(PermissionBits.VIEW)),
):
    """
    Ids of resources the caller holds every bit of ``required_permission`` on.
    """
    try:
        resource_ids = service.find_accessible_resources(
            session, current_user.id, current_user.role, resource_type, required_permission
        )
    except PermissionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.AccessibleResourcesResponse(
        resource_type=resource_type,
        required_permission=required_permission,
        resource_ids=sorted(resource_ids),
    )


@router.get("/{resource_type}/{resource_id}", response_model=schemas.ResourcePermissionsResponse)
def get_resource_permissions(
    service: Annotated[PermissionService, Depends(get_permission_service)],
    session: Annotated[Session, Depends(get_db)],
    access: Annotated[ResourceAccess, Depends(require_share_access)],
):
    """
    Every ACL entry on a resource. Requires SHARE.
    """
    entries = service.get_resource_entries(session, access.resource_type, access.resource_id)
    return schemas.ResourcePermissionsResponse(
        resource_type=access.resource_type,
        resource_id=access.resource_id,
        entries=entries,
    )


@router.put("/{resource_type}/{resource_id}", response_model=BulkUpdateResult)
def update_resource_permissions(
    body: BulkUpdateRequest,
    service: Annotated[PermissionService, Depends(get_permission_service)],
    session: Annotated[Session, Depends(get_db)],
    access: Annotated[ResourceAccess, Depends(require_share_access)],
):
    """
    Apply a sharing dialog's changes. Requires SHARE.

    Per-principal failures come back in ``errors``; the rest are applied.
    """
    try:
        return service.bulk_update_resource_permissions(
            session,
            access.resource_type,
            access.resource_id,
            updated_principals=body.updated,
            revoked_principals=body.removed,
            granted_by=access.user.id,
        )
    except PermissionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{resource_type}/{resource_id}/effective", response_model=schemas.EffectivePermissionsResponse)
def get_effective_permissions(
    resource_type: str,
    resource_id: str,
    service: Annotated[PermissionService, Depends(get_permission_service)],
    session: Annotated[Session, Depends(get_db)],
    lookups: Annotated[ResourceLookupRegistry, Depends(get_resource_lookups)],
    current_user: Annotated[AuthenticatedUser, Depends(require_current_user)],
):
    """
    The caller's combined bits on a resource, with the role label that best describes them.
    """
    try:
        resource = lookups.lookup(session, resource_type, resource_id)
    except UnknownResourceTypeError:
        raise HTTPException(status_code=500, detail="Resource lookup not configured")
    if resource is None:
        raise HTTPException(status_code=404, detail=f"{resource_type} not found")

    try:
        perm_bits = service.get_effective_permissions(
            session, current_user.id, current_user.role, resource_type, resource.resource_id
        )
    except PermissionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    role = service.get_role_for_permissions(session, resource_type, perm_bits) if perm_bits else None
    return schemas.EffectivePermissionsResponse(
        resource_type=resource_type,
        resource_id=resource.resource_id,
        perm_bits=perm_bits,
        access_role_id=role.access_role_id if role else None,
    )
