"""Fabric Workspace Archiver - rate-limited parallel export of workspace items."""

__version__ = "0.1.0"
