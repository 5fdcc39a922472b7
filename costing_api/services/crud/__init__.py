"""
CRUD building blocks: tenant-isolated repositories.
"""

from .repository import BaseRepository, TenantRepository

__all__ = ["BaseRepository", "TenantRepository"]
