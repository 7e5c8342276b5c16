"""Per-object-class handlers."""
from .base import ObjectHandler
from .groups import GROUP_OBJECT_CLASS, GroupHandler
from .users import USER_OBJECT_CLASS, UserHandler

__all__ = ["ObjectHandler", "GroupHandler", "UserHandler", "GROUP_OBJECT_CLASS", "USER_OBJECT_CLASS"]
