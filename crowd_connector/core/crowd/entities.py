"""Crowd REST entity representations.

Usage:
    # Crowd JSON → entity
    user = UserEntity.from_json({"name": "alice", "key": "32769:abc", "active": True})

    # entity → Crowd JSON
    payload = user.to_json()
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def _to_datetime(value: Any) -> Optional[datetime]:
    """Convert Crowd's epoch milliseconds into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromtimestamp(int(value) / 1000.0, tz=timezone.utc)


def _attributes_from_json(data: Dict[str, Any]) -> Dict[str, List[str]]:
    """Read the ``{"attributes": [{"name", "values"}]}`` envelope."""
    envelope = data.get("attributes") or {}
    if isinstance(envelope, dict):
        entries = envelope.get("attributes") or []
    else:
        entries = envelope
    return {entry["name"]: list(entry.get("values") or []) for entry in entries}


def attributes_to_json(attributes: Dict[str, Any]) -> Dict[str, Any]:
    """Build the attribute envelope; an empty value list clears the attribute."""
    return {
        "attributes": [
            {"name": name, "values": sorted(values)}
            for name, values in attributes.items()
        ]
    }


@dataclass
class UserEntity:
    """Crowd user with its custom attributes."""

    name: str
    key: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    active: bool = True
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None
    attributes: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "UserEntity":
        return cls(
            name=data.get("name", ""),
            key=data.get("key"),
            first_name=data.get("first-name"),
            last_name=data.get("last-name"),
            display_name=data.get("display-name"),
            email=data.get("email"),
            active=data.get("active", True),
            created_date=_to_datetime(data.get("created-date")),
            updated_date=_to_datetime(data.get("updated-date")),
            attributes=_attributes_from_json(data),
        )

    def to_json(self) -> Dict[str, Any]:
        """Serialize the plain fields (attributes are stored by a separate call)."""
        return {
            "name": self.name,
            "first-name": self.first_name,
            "last-name": self.last_name,
            "display-name": self.display_name,
            "email": self.email,
            "active": self.active,
        }

    def get_value(self, name: str) -> Optional[str]:
        values = self.attributes.get(name)
        return values[0] if values else None

    def get_values(self, name: str) -> Optional[List[str]]:
        return self.attributes.get(name)

    def copy(self, **changes: Any) -> "UserEntity":
        changes.setdefault("attributes", {k: list(v) for k, v in self.attributes.items()})
        return replace(self, **changes)


@dataclass
class GroupEntity:
    """Crowd group with its custom attributes."""

    name: str
    description: Optional[str] = None
    active: bool = True
    type: str = "GROUP"
    attributes: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "GroupEntity":
        return cls(
            name=data.get("name", ""),
            description=data.get("description"),
            active=data.get("active", True),
            type=data.get("type", "GROUP"),
            attributes=_attributes_from_json(data),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "active": self.active,
        }

    def get_value(self, name: str) -> Optional[str]:
        values = self.attributes.get(name)
        return values[0] if values else None

    def get_values(self, name: str) -> Optional[List[str]]:
        return self.attributes.get(name)

    def copy(self, **changes: Any) -> "GroupEntity":
        changes.setdefault("attributes", {k: list(v) for k, v in self.attributes.items()})
        return replace(self, **changes)
