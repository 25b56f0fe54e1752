"""
Grant engine: every write to the ACL.

Per (principal, resource) tuple the ACL is a two-state machine, NoEntry or
Entry(bits):

    grant(b)            NoEntry -> Entry(b),  Entry(_) -> Entry(b)
    revoke              Entry(_) -> NoEntry,  NoEntry -> NoEntry
    modify(add, remove) Entry(b) -> Entry((b | add) & ~remove), NoEntry -> NoEntry

A grant replaces bits rather than accumulating them, which is what makes a
downgrade (OWNER -> VIEWER) expressible as a plain re-grant.
"""

from typing import Any, Dict, Mapping, Optional, Sequence, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from aclkeeper.access_control.exceptions import PermissionValidationError
from aclkeeper.access_control.models import (
    BulkUpdateError,
    BulkUpdateResult,
    SharePrincipal,
)
from aclkeeper.access_control.permissions import (
    PrincipalType,
    validate_perm_bits,
    validate_resource_type,
)
from aclkeeper.platform.logging import get_logger
from aclkeeper.platform.metrics import acl_writes_total
from aclkeeper.storage.models_access_control import AclEntryModel
from aclkeeper.storage.repositories.access_role_repository import AccessRoleRepository
from aclkeeper.storage.repositories.acl_entry_repository import AclEntryRepository

logger = get_logger(__name__)

PrincipalInput = Union[SharePrincipal, Mapping[str, Any]]


def validate_principal(principal_type: Any, principal_id: Optional[str]) -> PrincipalType:
    """
    Check a principal reference and return its normalized type.

    PUBLIC must not carry an id; every other type must carry a non-empty one.
    """
    try:
        ptype = PrincipalType(principal_type)
    except ValueError:
        raise PermissionValidationError(f"Invalid principal type: {principal_type}") from None

    if ptype == PrincipalType.PUBLIC:
        if principal_id is not None:
            raise PermissionValidationError("Public principals must not have a principal ID")
        return ptype

    if not principal_id:
        raise PermissionValidationError("Principal ID is required for user, group, and role principals")
    if not isinstance(principal_id, str) or not principal_id.strip():
        raise PermissionValidationError(f"Invalid {ptype.value} ID: {principal_id!r}")
    return ptype


def validate_resource(resource_type: str, resource_id: Optional[str]) -> None:
    if not resource_id:
        raise PermissionValidationError(f"Invalid resource ID: {resource_id}")
    validate_resource_type(resource_type)


def _principal_dump(principal: PrincipalInput) -> Dict[str, Any]:
    if isinstance(principal, SharePrincipal):
        return principal.model_dump(mode="json", exclude_none=True)
    return dict(principal)


class GrantEngine:
    def __init__(
        self,
        acl_repo: Optional[AclEntryRepository] = None,
        role_repo: Optional[AccessRoleRepository] = None,
    ):
        self.acl_repo = acl_repo or AclEntryRepository()
        self.role_repo = role_repo or AccessRoleRepository()

    def grant_permission(
        self,
        session: Session,
        principal_type: Any,
        principal_id: Optional[str],
        resource_type: str,
        resource_id: str,
        perm_bits: int,
        granted_by: Optional[str],
        role_id: Optional[str] = None,
    ) -> AclEntryModel:
        """Create or replace the entry for the tuple; returns the stored entry."""
        ptype = validate_principal(principal_type, principal_id)
        validate_resource(resource_type, resource_id)
        perm_bits = validate_perm_bits(perm_bits)

        entry, created = self.acl_repo.upsert(
            session,
            ptype,
            principal_id,
            resource_type,
            resource_id,
            perm_bits,
            granted_by,
            role_id=role_id,
        )
        acl_writes_total.labels(operation="grant", resource_type=resource_type).inc()
        logger.debug(
            "Permission granted",
            principal_type=ptype.value,
            principal_id=principal_id,
            resource_type=resource_type,
            resource_id=resource_id,
            perm_bits=perm_bits,
            created=created,
        )
        return entry

    def revoke_permission(
        self,
        session: Session,
        principal_type: Any,
        principal_id: Optional[str],
        resource_type: str,
        resource_id: str,
    ) -> int:
        """Delete the tuple's entry. Returns 0 when there was nothing to delete."""
        ptype = validate_principal(principal_type, principal_id)
        validate_resource(resource_type, resource_id)

        deleted = self.acl_repo.delete_many(
            session, self.acl_repo.key_clause(ptype, principal_id, resource_type, resource_id)
        )
        acl_writes_total.labels(operation="revoke", resource_type=resource_type).inc()
        return deleted

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
        """Adjust bits of an existing entry; returns None (and creates nothing) if absent."""
        ptype = validate_principal(principal_type, principal_id)
        validate_resource(resource_type, resource_id)
        add = validate_perm_bits(add_bits) if add_bits else 0
        remove = validate_perm_bits(remove_bits) if remove_bits else 0

        entry = self.acl_repo.update_bits(
            session, ptype, principal_id, resource_type, resource_id, add_bits=add, remove_bits=remove
        )
        if entry is not None:
            acl_writes_total.labels(operation="modify", resource_type=resource_type).inc()
        return entry

    def remove_all_permissions(self, session: Session, resource_type: str, resource_id: str) -> int:
        """Cascade cleanup when a resource is deleted; a no-op when nothing was shared."""
        validate_resource(resource_type, resource_id)
        deleted = self.acl_repo.delete_for_resource(session, resource_type, resource_id)
        acl_writes_total.labels(operation="remove_all", resource_type=resource_type).inc()
        logger.info(
            "Removed all permissions for resource",
            resource_type=resource_type,
            resource_id=resource_id,
            deleted=deleted,
        )
        return deleted

    def bulk_update_resource_permissions(
        self,
        session: Session,
        resource_type: str,
        resource_id: str,
        updated_principals: Sequence[PrincipalInput] = (),
        revoked_principals: Sequence[PrincipalInput] = (),
        granted_by: Optional[str] = None,
    ) -> BulkUpdateResult:
        """
        Apply a sharing dialog's changes to one resource.

        Not all-or-nothing: each principal is applied in its own savepoint and
        a failure (missing or unknown role, bad principal) is reported in
        ``errors`` while the remaining principals go through. Only malformed
        arguments raise.
        """
        if not isinstance(updated_principals, (list, tuple)):
            raise PermissionValidationError("updatedPrincipals must be an array")
        if not isinstance(revoked_principals, (list, tuple)):
            raise PermissionValidationError("revokedPrincipals must be an array")
        validate_resource(resource_type, resource_id)

        roles = {
            role.access_role_id: role
            for role in self.role_repo.list_by_resource_type(session, resource_type)
        }
        result = BulkUpdateResult()

        for raw in updated_principals:
            try:
                principal = raw if isinstance(raw, SharePrincipal) else SharePrincipal.model_validate(raw)
                if not principal.access_role_id:
                    raise PermissionValidationError("accessRoleId is required for updated principals")
                role = roles.get(principal.access_role_id)
                if role is None:
                    raise PermissionValidationError(f"Role {principal.access_role_id} not found")
                ptype = validate_principal(principal.type, principal.id)

                with session.begin_nested():
                    _, created = self.acl_repo.upsert(
                        session,
                        ptype,
                        principal.id,
                        resource_type,
                        resource_id,
                        role.perm_bits,
                        granted_by,
                        role_id=role.id,
                    )
                (result.granted if created else result.updated).append(principal)
            except (ValidationError, PermissionValidationError) as e:
                result.errors.append(BulkUpdateError(principal=_principal_dump(raw), error=_error_message(e)))
            except Exception as e:
                logger.warning(
                    "Bulk grant failed for principal",
                    resource_type=resource_type,
                    resource_id=resource_id,
                    error=str(e),
                )
                result.errors.append(BulkUpdateError(principal=_principal_dump(raw), error=str(e)))

        for raw in revoked_principals:
            try:
                principal = raw if isinstance(raw, SharePrincipal) else SharePrincipal.model_validate(raw)
                ptype = validate_principal(principal.type, principal.id)
                with session.begin_nested():
                    self.acl_repo.find_one_and_delete(
                        session, self.acl_repo.key_clause(ptype, principal.id, resource_type, resource_id)
                    )
                result.revoked.append(principal)
            except (ValidationError, PermissionValidationError) as e:
                result.errors.append(BulkUpdateError(principal=_principal_dump(raw), error=_error_message(e)))
            except Exception as e:
                logger.warning(
                    "Bulk revoke failed for principal",
                    resource_type=resource_type,
                    resource_id=resource_id,
                    error=str(e),
                )
                result.errors.append(BulkUpdateError(principal=_principal_dump(raw), error=str(e)))

        acl_writes_total.labels(operation="bulk_update", resource_type=resource_type).inc()
        logger.info(
            "Bulk permission update applied",
            resource_type=resource_type,
            resource_id=resource_id,
            granted=len(result.granted),
            updated=len(result.updated),
            revoked=len(result.revoked),
            errors=len(result.errors),
        )
        return result


def _error_message(error: Exception) -> str:
    if isinstance(error, ValidationError):
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in error.errors())
        return f"Invalid principal: {fields}"
    return str(error)
