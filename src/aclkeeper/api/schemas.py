from typing import List, Optional
from pydantic import BaseModel, Field

from aclkeeper.access_control.models import AclEntry

# --- Permissions ---

class ResourcePermissionsResponse(BaseModel):
    resource_type: str
    resource_id: str
    entries: List[AclEntry] = Field(default_factory=list)

class AccessibleResourcesResponse(BaseModel):
    resource_type: str
    required_permission: int
    resource_ids: List[str] = Field(default_factory=list)

class EffectivePermissionsResponse(BaseModel):
    resource_type: str
    resource_id: str
    perm_bits: int
    access_role_id: Optional[str] = Field(None, description="Role whose bits best describe perm_bits, for display")

