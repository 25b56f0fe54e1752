"""
Access control errors.

Validation errors signal a programmer or configuration bug and always reach
the caller. Storage failures are not wrapped here; the PermissionService
decides whether to swallow them (read paths) or re-raise them (write paths).
"""


class AccessControlError(Exception):
    """Base class for access control errors."""


class PermissionValidationError(AccessControlError, ValueError):
    """Invalid input: unknown resource type, bad permission mask, missing principal id."""


class RoleNotFoundError(AccessControlError, LookupError):
    """An access role referenced on a write path does not exist."""

    def __init__(self, access_role_id: str):
        self.access_role_id = access_role_id
        super().__init__(f"Role {access_role_id} not found")
