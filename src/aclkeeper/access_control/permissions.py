"""
Permission bits, principal types and the resource-type registry.

Permissions are stored as an integer bitmask per ACL entry. A required mask
is satisfied only when an entry holds every requested bit, so composite
masks such as ``VIEW | EDIT`` can be checked in a single call.
"""

from enum import Enum, IntFlag
from typing import Iterable, List, Set

from aclkeeper.access_control.exceptions import PermissionValidationError


class PermissionBits(IntFlag):
    VIEW = 1
    EDIT = 2
    DELETE = 4
    SHARE = 8


class RoleBits(IntFlag):
    """Permission bundles backing the predefined access roles."""

    VIEWER = 1  # VIEW
    EDITOR = 3  # VIEW | EDIT
    OWNER = 15  # VIEW | EDIT | DELETE | SHARE


class PrincipalType(str, Enum):
    USER = "user"
    GROUP = "group"
    ROLE = "role"
    PUBLIC = "public"


class ResourceType:
    """Built-in resource types. The set is open: see register_resource_type()."""

    AGENT = "agent"
    PROMPTGROUP = "promptGroup"
    MCPSERVER = "mcpServer"
    REMOTE_AGENT = "remoteAgent"


class AccessRoleIds:
    AGENT_VIEWER = "agent_viewer"
    AGENT_EDITOR = "agent_editor"
    AGENT_OWNER = "agent_owner"
    PROMPTGROUP_VIEWER = "promptGroup_viewer"
    PROMPTGROUP_EDITOR = "promptGroup_editor"
    PROMPTGROUP_OWNER = "promptGroup_owner"
    MCPSERVER_VIEWER = "mcpServer_viewer"
    MCPSERVER_EDITOR = "mcpServer_editor"
    MCPSERVER_OWNER = "mcpServer_owner"
    REMOTE_AGENT_VIEWER = "remoteAgent_viewer"
    REMOTE_AGENT_EDITOR = "remoteAgent_editor"
    REMOTE_AGENT_OWNER = "remoteAgent_owner"


DEFAULT_RESOURCE_TYPES = (
    ResourceType.AGENT,
    ResourceType.PROMPTGROUP,
    ResourceType.MCPSERVER,
    ResourceType.REMOTE_AGENT,
)

_resource_types: Set[str] = set(DEFAULT_RESOURCE_TYPES)


def register_resource_type(resource_type: str) -> None:
    """Accept an additional resource type in every validated operation."""
    if not isinstance(resource_type, str) or not resource_type.strip():
        raise PermissionValidationError(f"Invalid resourceType: {resource_type!r}")
    _resource_types.add(resource_type)


def register_resource_types(resource_types: Iterable[str]) -> None:
    for resource_type in resource_types:
        register_resource_type(resource_type)


def get_resource_types() -> List[str]:
    return sorted(_resource_types)


def is_valid_resource_type(resource_type: str) -> bool:
    return resource_type in _resource_types


def validate_resource_type(resource_type: str) -> None:
    if not is_valid_resource_type(resource_type):
        raise PermissionValidationError(
            f"Invalid resourceType: {resource_type}. Valid types: {', '.join(get_resource_types())}"
        )


def validate_required_permission(value, name: str = "requiredPermission") -> int:
    """
    Reject anything that is not a positive integer mask.

    bool is excluded explicitly since True would otherwise pass as 1.
    """
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise PermissionValidationError(f"{name} must be a positive number")
    return int(value)


def validate_perm_bits(value) -> int:
    """Stored masks may be zero (an entry stripped of every bit) but never negative."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise PermissionValidationError(f"permBits must be a non-negative integer, got {value!r}")
    return int(value)


def role_id_for(resource_type: str, role_name: str) -> str:
    """Build the canonical access role identifier, e.g. ``agent_viewer``."""
    return f"{resource_type}_{role_name}"
