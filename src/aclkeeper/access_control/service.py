"""
Permission service.

Single entry point for callers outside the engine. It validates input,
expands the caller into principals, delegates to the grant and query engines
and applies the error policy:

- validation errors always propagate (they are caller bugs);
- any other failure on a read path is logged and turned into the safe
  negative (False / 0 / {} / []), so a permission check fails closed;
- any failure on a write path is logged and re-raised, so a failed grant
  never looks like a successful one.
"""

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from aclkeeper.access_control.exceptions import PermissionValidationError, RoleNotFoundError
from aclkeeper.access_control.grants import GrantEngine, PrincipalInput
from aclkeeper.access_control.models import AccessRole, AclEntry, BulkUpdateResult
from aclkeeper.access_control.permissions import (
    validate_required_permission,
    validate_resource_type,
)
from aclkeeper.access_control.principals import PrincipalResolver
from aclkeeper.access_control.queries import PermissionQueryEngine
from aclkeeper.access_control.roles import AccessRoleRegistry
from aclkeeper.platform.logging import get_logger
from aclkeeper.platform.metrics import permission_checks_total
from aclkeeper.storage.models_access_control import AclEntryModel, AccessRoleModel

logger = get_logger(__name__)


class PermissionService:
    def __init__(
        self,
        resolver: Optional[PrincipalResolver] = None,
        roles: Optional[AccessRoleRegistry] = None,
        grants: Optional[GrantEngine] = None,
        queries: Optional[PermissionQueryEngine] = None,
    ):
        self.resolver = resolver or PrincipalResolver()
        self.roles = roles or AccessRoleRegistry()
        self.grants = grants or GrantEngine(role_repo=self.roles.role_repo)
        self.queries = queries or PermissionQueryEngine(acl_repo=self.grants.acl_repo)

    # --- Writes ---

    def grant_permission(
        self,
        session: Session,
        principal_type: Any,
        principal_id: Optional[str],
        resource_type: str,
        resource_id: str,
        access_role_id: str,
        granted_by: Optional[str] = None,
    ) -> AclEntryModel:
        """
        Grant ``access_role_id`` on a resource, replacing any existing grant.

        Raises RoleNotFoundError for an unknown role and
        PermissionValidationError when the role belongs to another resource type.
        """
        validate_resource_type(resource_type)
        try:
            role = self.roles.find_role_by_identifier(session, access_role_id)
            if role is None:
                raise RoleNotFoundError(access_role_id)
            if role.resource_type != resource_type:
                raise PermissionValidationError(
                    f"Role {access_role_id} is for {role.resource_type} resources, not {resource_type}"
                )
            return self.grants.grant_permission(
                session,
                principal_type,
                principal_id,
                resource_type,
                resource_id,
                role.perm_bits,
                granted_by,
                role_id=role.id,
            )
        except (PermissionValidationError, RoleNotFoundError):
            raise
        except Exception as e:
            logger.error(
                "Failed to grant permission",
                resource_type=resource_type,
                resource_id=resource_id,
                access_role_id=access_role_id,
                error=str(e),
            )
            raise

    def revoke_permission(
        self,
        session: Session,
        principal_type: Any,
        principal_id: Optional[str],
        resource_type: str,
        resource_id: str,
    ) -> int:
        try:
            return self.grants.revoke_permission(session, principal_type, principal_id, resource_type, resource_id)
        except PermissionValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to revoke permission",
                resource_type=resource_type,
                resource_id=resource_id,
                error=str(e),
            )
            raise

    def modify_permission_bits(
        self,
        session: Session,
        principal_type: Any,
        principal_id: Optional[str],
        resource_type: str,
        resource_id: str,
        add_bits: Optional[int] = None,
        remove_bits: Optional[int] = None,
    ) -> Optional[AclEntryModel]:
        try:
            return self.grants.modify_permission_bits(
                session, principal_type, principal_id, resource_type, resource_id, add_bits, remove_bits
            )
        except PermissionValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to modify permission bits",
                resource_type=resource_type,
                resource_id=resource_id,
                error=str(e),
            )
            raise

    def bulk_update_resource_permissions(
        self,
        session: Session,
        resource_type: str,
        resource_id: str,
        updated_principals: Sequence[PrincipalInput] = (),
        revoked_principals: Sequence[PrincipalInput] = (),
        granted_by: Optional[str] = None,
    ) -> BulkUpdateResult:
        try:
            return self.grants.bulk_update_resource_permissions(
                session, resource_type, resource_id, updated_principals, revoked_principals, granted_by
            )
        except PermissionValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to bulk update permissions",
                resource_type=resource_type,
                resource_id=resource_id,
                error=str(e),
            )
            raise

    def remove_all_permissions(self, session: Session, resource_type: str, resource_id: str) -> int:
        try:
            return self.grants.remove_all_permissions(session, resource_type, resource_id)
        except PermissionValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to remove permissions for resource",
                resource_type=resource_type,
                resource_id=resource_id,
                error=str(e),
            )
            raise

    # --- Reads ---

    def check_permission(
        self,
        session: Session,
        user_id: str,
        role: Optional[str],
        resource_type: str,
        resource_id: str,
        required_permission: int,
    ) -> bool:
        validate_resource_type(resource_type)
        validate_required_permission(required_permission)
        try:
            principals = self.resolver.get_user_principals(session, user_id, role)
            allowed = self.queries.has_permission(
                session, principals, resource_type, resource_id, required_permission
            )
        except PermissionValidationError:
            raise
        except Exception as e:
            permission_checks_total.labels(resource_type=resource_type, outcome="error").inc()
            logger.error(
                "Permission check failed, denying access",
                user_id=user_id,
                resource_type=resource_type,
                resource_id=resource_id,
                error=str(e),
            )
            return False

        permission_checks_total.labels(
            resource_type=resource_type, outcome="allow" if allowed else "deny"
        ).inc()
        return allowed

    def get_effective_permissions(
        self,
        session: Session,
        user_id: str,
        role: Optional[str],
        resource_type: str,
        resource_id: str,
    ) -> int:
        validate_resource_type(resource_type)
        try:
            principals = self.resolver.get_user_principals(session, user_id, role)
            return self.queries.get_effective_permissions(session, principals, resource_type, resource_id)
        except PermissionValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to get effective permissions",
                user_id=user_id,
                resource_type=resource_type,
                resource_id=resource_id,
                error=str(e),
            )
            return 0

    def get_resource_permissions_map(
        self,
        session: Session,
        user_id: str,
        role: Optional[str],
        resource_type: str,
        resource_ids: Sequence[str],
    ) -> Dict[str, int]:
        """Effective bits per resource id; ids the caller has no entry for are absent."""
        validate_resource_type(resource_type)
        if not isinstance(resource_ids, (list, tuple, set)):
            raise PermissionValidationError("resourceIds must be an array")
        if not resource_ids:
            return {}
        try:
            principals = self.resolver.get_user_principals(session, user_id, role)
            return self.queries.get_effective_permissions_for_resources(
                session, principals, resource_type, list(resource_ids)
            )
        except PermissionValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to get resource permissions map",
                user_id=user_id,
                resource_type=resource_type,
                count=len(resource_ids),
                error=str(e),
            )
            return {}

    def find_accessible_resources(
        self,
        session: Session,
        user_id: str,
        role: Optional[str],
        resource_type: str,
        required_permission: int,
    ) -> List[str]:
        validate_resource_type(resource_type)
        validate_required_permission(required_permission)
        try:
            principals = self.resolver.get_user_principals(session, user_id, role)
            return self.queries.find_accessible_resources(session, principals, resource_type, required_permission)
        except PermissionValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to find accessible resources",
                user_id=user_id,
                resource_type=resource_type,
                error=str(e),
            )
            return []

    def find_publicly_accessible_resources(
        self, session: Session, resource_type: str, required_permission: int
    ) -> List[str]:
        validate_resource_type(resource_type)
        validate_required_permission(required_permission)
        try:
            return self.queries.find_publicly_accessible_resources(session, resource_type, required_permission)
        except PermissionValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to find publicly accessible resources",
                resource_type=resource_type,
                error=str(e),
            )
            return []

    def has_public_permission(
        self, session: Session, resource_type: str, resource_id: str, required_permission: int
    ) -> bool:
        validate_resource_type(resource_type)
        validate_required_permission(required_permission)
        try:
            return self.queries.has_public_permission(session, resource_type, resource_id, required_permission)
        except PermissionValidationError:
            raise
        except Exception as e:
            logger.error(
                "Failed to check public permission",
                resource_type=resource_type,
                resource_id=resource_id,
                error=str(e),
            )
            return False

    def get_available_roles(self, session: Session, resource_type: str) -> List[AccessRole]:
        validate_resource_type(resource_type)
        try:
            roles = self.roles.find_roles_by_resource_type(session, resource_type)
        except Exception as e:
            logger.error("Failed to list roles", resource_type=resource_type, error=str(e))
            return []
        return [AccessRole.model_validate(role) for role in roles]

    def get_role_for_permissions(
        self, session: Session, resource_type: str, perm_bits: int
    ) -> Optional[AccessRoleModel]:
        """Display label for a mask; None when no role fits or the lookup fails."""
        try:
            return self.roles.get_role_for_permissions(session, resource_type, perm_bits)
        except Exception as e:
            logger.error("Failed to resolve role for permissions", resource_type=resource_type, error=str(e))
            return None

    def get_resource_entries(self, session: Session, resource_type: str, resource_id: str) -> List[AclEntry]:
        validate_resource_type(resource_type)
        try:
            entries = self.queries.find_entries_by_resource(session, resource_type, resource_id)
        except Exception as e:
            logger.error(
                "Failed to list resource entries",
                resource_type=resource_type,
                resource_id=resource_id,
                error=str(e),
            )
            return []
        return [AclEntry.model_validate(entry) for entry in entries]
