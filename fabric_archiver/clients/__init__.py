"""API clients for the Fabric REST API."""

from .auth import TokenManager
from .base import WorkspaceApi
from .fabric_client import FabricClient, write_definition_parts

__all__ = ["TokenManager", "WorkspaceApi", "FabricClient", "write_definition_parts"]
