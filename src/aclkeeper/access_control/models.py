from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from aclkeeper.access_control.permissions import PrincipalType


@dataclass(frozen=True)
class Principal:
    """One member of a caller's resolved principal set."""
    principal_type: PrincipalType
    principal_id: Optional[str] = None

    @classmethod
    def user(cls, user_id: str) -> "Principal":
        return cls(PrincipalType.USER, user_id)

    @classmethod
    def group(cls, group_id: str) -> "Principal":
        return cls(PrincipalType.GROUP, group_id)

    @classmethod
    def role(cls, role_name: str) -> "Principal":
        return cls(PrincipalType.ROLE, role_name)

    @classmethod
    def public(cls) -> "Principal":
        return cls(PrincipalType.PUBLIC, None)


# --- Access Roles ---

class AccessRoleBase(BaseModel):
    access_role_id: str = Field(..., description="Unique role identifier, e.g. 'agent_viewer'")
    name: str
    description: Optional[str] = None
    resource_type: str
    perm_bits: int = Field(..., ge=0)


class AccessRoleCreate(AccessRoleBase):
    pass


class AccessRoleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    perm_bits: Optional[int] = Field(None, ge=0)


class AccessRole(AccessRoleBase):
    id: str

    model_config = ConfigDict(from_attributes=True)


# --- ACL Entries ---

class AclEntry(BaseModel):
    id: str
    principal_type: PrincipalType
    principal_id: Optional[str] = None
    resource_type: str
    resource_id: str
    perm_bits: int
    role_id: Optional[str] = None
    granted_by: Optional[str] = None
    granted_at: Optional[datetime] = None
    inherited_from: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# --- Bulk sharing ---

class SharePrincipal(BaseModel):
    """
    A principal as sent by a sharing dialog.

    Only ``type``, ``id`` and ``access_role_id`` drive the update; the display
    fields are echoed back in the result so the caller can render it.
    """
    type: PrincipalType
    id: Optional[str] = None
    access_role_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    source: Optional[str] = None
    avatar: Optional[str] = None
    description: Optional[str] = None
    id_on_the_source: Optional[str] = None
    member_count: Optional[int] = None


class BulkUpdateError(BaseModel):
    principal: Dict[str, Any]
    error: str


class BulkUpdateResult(BaseModel):
    granted: List[SharePrincipal] = Field(default_factory=list)
    updated: List[SharePrincipal] = Field(default_factory=list)
    revoked: List[SharePrincipal] = Field(default_factory=list)
    errors: List[BulkUpdateError] = Field(default_factory=list)


class BulkUpdateRequest(BaseModel):
    """Raw items; each is validated on its own so one bad principal cannot fail the batch."""
    updated: List[Dict[str, Any]] = Field(default_factory=list)
    removed: List[Dict[str, Any]] = Field(default_factory=list)

