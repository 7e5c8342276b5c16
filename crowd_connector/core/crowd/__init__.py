"""Crowd REST API client and entities."""
from .client import CrowdClient
from .entities import GroupEntity, UserEntity

__all__ = ["CrowdClient", "GroupEntity", "UserEntity"]
