"""
aclkeeper - Resource Access Control Engine

This package contains the access control backend:
- access_control: permission bits, access roles, principal resolution,
  grant and query engines, and the PermissionService facade
- storage: SQLAlchemy models, repositories and the Postgres adapter
- api: FastAPI app, resource-access guard and the permissions router
- platform: Cross-cutting concerns (config, logging, metrics)
"""

__version__ = "0.1.0"
