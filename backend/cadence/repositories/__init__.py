# backend/cadence/repositories/__init__.py
"""
Repository layer: one repository per aggregate, created through
RepositoryFactory. Repositories flush, services commit.
"""

from .base_repository import BaseRepository, IRepository, UniqueViolation
from .factory import RepositoryFactory

__all__ = ["BaseRepository", "IRepository", "RepositoryFactory", "UniqueViolation"]
