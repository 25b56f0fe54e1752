"""
Resource lookup collaborator for the request guard.

Each resource type registers a function that turns the identifier seen in a
URL into the internal id used by ACL entries and the resource's author.
Lookups run before any ACL check, so a missing resource is a 404 whatever
the caller's grants.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session


@dataclass(frozen=True)
class ResourceRef:
    resource_id: str
    author_id: Optional[str] = None


ResourceLookup = Callable[[Session, str], Optional[ResourceRef]]


class UnknownResourceTypeError(LookupError):
    def __init__(self, resource_type: str):
        super().__init__(f"No resource lookup registered for {resource_type}")
        self.resource_type = resource_type


def identity_lookup(session: Session, external_id: str) -> Optional[ResourceRef]:
    """Treat the external id as the internal id; no author, so no author bypass."""
    return ResourceRef(resource_id=external_id)


class ResourceLookupRegistry:
    def __init__(self, fallback: Optional[ResourceLookup] = None):
        self._lookups: Dict[str, ResourceLookup] = {}
        self.fallback = fallback

    def register(self, resource_type: str, lookup: ResourceLookup) -> None:
        self._lookups[resource_type] = lookup

    def unregister(self, resource_type: str) -> None:
        self._lookups.pop(resource_type, None)

    def is_registered(self, resource_type: str) -> bool:
        return resource_type in self._lookups or self.fallback is not None

    def lookup(self, session: Session, resource_type: str, external_id: str) -> Optional[ResourceRef]:
        lookup = self._lookups.get(resource_type, self.fallback)
        if lookup is None:
            raise UnknownResourceTypeError(resource_type)
        return lookup(session, external_id)


# Process-wide registry; applications register their lookups at startup
resource_lookups = ResourceLookupRegistry()


def get_resource_lookups() -> ResourceLookupRegistry:
    return resource_lookups
