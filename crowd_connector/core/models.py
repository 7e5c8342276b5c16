"""Staging models: per-call accumulators of pending Crowd changes.

A staging model is created fresh for one create or update, mutated by
``SchemaDefinition.apply`` / ``apply_delta`` through descriptor closures, read
once by the object handler to decide which remote calls to issue, then dropped.

Dirty flags, not the presence of a delta, drive the dispatch:
    core_fields_changed   → update_user / update_group
    display_name_changed  → rename (update) or primary name (create)
    secret_changed        → update_password (users only)
    attributes_changed    → store_*_attributes
    relations_added       → add_*_to_groups
    relations_removed     → remove_*_from_groups
"""
from __future__ import annotations
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from .crowd.entities import GroupEntity, UserEntity


class StagingModel:
    """Shared change tracking for users and groups."""

    def __init__(self, current_attributes: Optional[Mapping[str, Iterable[str]]] = None):
        snapshot = {k: frozenset(v or ()) for k, v in (current_attributes or {}).items()}
        self.current_attributes: Mapping[str, frozenset] = MappingProxyType(snapshot)
        self.pending_attributes: Dict[str, Set[str]] = {}
        self.pending_relation_add: List[str] = []
        self.pending_relation_remove: List[str] = []

        self.core_fields_changed = False
        self.display_name_changed = False
        self.secret_changed = False
        self.attributes_changed = False
        self.relations_added = False
        self.relations_removed = False

    # ─────────────────────────────────────────────────────────────────────
    # Custom attributes
    # ─────────────────────────────────────────────────────────────────────

    def _working_set(self, name: str) -> Set[str]:
        if name not in self.pending_attributes:
            self.pending_attributes[name] = set(self.current_attributes.get(name, ()))
        return self.pending_attributes[name]

    def replace_attribute(self, name: str, value: Optional[str]) -> None:
        """Stage a single-valued custom attribute; None clears it."""
        self.pending_attributes[name] = {value} if value not in (None, "") else set()
        self.attributes_changed = True

    def add_attributes(self, name: str, values: Iterable[str]) -> None:
        self._working_set(name).update(values)
        self.attributes_changed = True

    def remove_attributes(self, name: str, values: Iterable[str]) -> None:
        self._working_set(name).difference_update(values)
        self.attributes_changed = True

    # ─────────────────────────────────────────────────────────────────────
    # Relations (group memberships)
    # ─────────────────────────────────────────────────────────────────────

    def add_groups(self, names: Iterable[str]) -> None:
        self.pending_relation_add.extend(names)
        self.relations_added = True

    def remove_groups(self, names: Iterable[str]) -> None:
        self.pending_relation_remove.extend(names)
        self.relations_removed = True

    def changed_attributes(self) -> Dict[str, Set[str]]:
        """Final value sets to store; an empty set clears the attribute."""
        return {k: set(v) for k, v in self.pending_attributes.items()}


class UserModel(StagingModel):
    """Staging model for a Crowd user."""

    def __init__(self, entity: UserEntity, current_attributes=None):
        super().__init__(current_attributes)
        self.entity = entity
        self.original_name = entity.name
        self.password: Optional[str] = None

    @classmethod
    def create(cls) -> "UserModel":
        return cls(UserEntity(name=""))

    @classmethod
    def from_entity(cls, entity: UserEntity) -> "UserModel":
        return cls(entity.copy(), entity.attributes)

    def set_user_name(self, value: Optional[str]) -> None:
        self.entity.name = value or ""
        self.display_name_changed = True

    def set_first_name(self, value: Optional[str]) -> None:
        self.entity.first_name = value
        self.core_fields_changed = True

    def set_last_name(self, value: Optional[str]) -> None:
        self.entity.last_name = value
        self.core_fields_changed = True

    def set_display_name(self, value: Optional[str]) -> None:
        self.entity.display_name = value
        self.core_fields_changed = True

    def set_email(self, value: Optional[str]) -> None:
        self.entity.email = value
        self.core_fields_changed = True

    def set_active(self, value: Any) -> None:
        self.entity.active = _to_bool(value)
        self.core_fields_changed = True

    def set_password(self, value: Optional[str]) -> None:
        self.password = value
        self.secret_changed = True

    @property
    def new_name(self) -> str:
        return self.entity.name

    def to_entity(self) -> UserEntity:
        return self.entity


class GroupModel(StagingModel):
    """Staging model for a Crowd group."""

    def __init__(self, entity: GroupEntity, current_attributes=None):
        super().__init__(current_attributes)
        self.entity = entity
        self.original_name = entity.name

    @classmethod
    def create(cls) -> "GroupModel":
        return cls(GroupEntity(name=""))

    @classmethod
    def from_entity(cls, entity: GroupEntity) -> "GroupModel":
        return cls(entity.copy(), entity.attributes)

    def set_group_name(self, value: Optional[str]) -> None:
        self.entity.name = value or ""
        self.display_name_changed = True

    def set_description(self, value: Optional[str]) -> None:
        self.entity.description = value
        self.core_fields_changed = True

    def set_active(self, value: Any) -> None:
        self.entity.active = _to_bool(value)
        self.core_fields_changed = True

    @property
    def new_name(self) -> str:
        return self.entity.name

    def to_entity(self) -> GroupEntity:
        return self.entity


def _to_bool(value: Any) -> bool:
    # Cleared __ENABLE__ falls back to Crowd's default (active)
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)
