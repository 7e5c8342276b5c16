"""Search filters supported by the connector.

Only two shapes are understood: equality on the identifier and equality on the
display name. Anything else is a full listing.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .exceptions import InvalidAttributeValueError
from .objects import NAME_NAME, UID_NAME


@dataclass(frozen=True)
class CrowdFilter:
    uid: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def by_uid(cls, value: str) -> "CrowdFilter":
        return cls(uid=value)

    @classmethod
    def by_name(cls, value: str) -> "CrowdFilter":
        return cls(name=value)

    @property
    def is_uid_search(self) -> bool:
        return self.uid is not None

    @property
    def is_name_search(self) -> bool:
        return self.name is not None


def translate(expression: Optional[Dict[str, Any]]) -> Optional[CrowdFilter]:
    """Translate ``{"attribute": "__UID__", "value": "x"}`` into a CrowdFilter.

    Raises:
        InvalidAttributeValueError: If the filter targets another attribute
    """
    if not expression:
        return None

    attribute = expression.get("attribute")
    value = expression.get("value")
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        raise InvalidAttributeValueError(f"Filter on '{attribute}' has no value")

    if attribute == UID_NAME:
        return CrowdFilter.by_uid(str(value))
    if attribute == NAME_NAME:
        return CrowdFilter.by_name(str(value))
    raise InvalidAttributeValueError(f"Unsupported filter attribute '{attribute}'")
