"""Host-facing value types exchanged with the identity-management console."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from .exceptions import InvalidAttributeValueError

if TYPE_CHECKING:
    from .schema import SchemaDefinition

UID_NAME = "__UID__"
NAME_NAME = "__NAME__"
PASSWORD_NAME = "__PASSWORD__"
ENABLE_NAME = "__ENABLE__"


@dataclass(frozen=True)
class Uid:
    """Identifier of a remote object, optionally carrying its current name."""

    value: str
    name_hint: Optional[str] = None

    def __str__(self) -> str:
        return self.value


@dataclass
class AttributeDelta:
    """Update instruction for one attribute.

    ``values_to_add=[]`` with no ``values_to_remove`` clears a single-valued
    attribute. ``None`` means the side of the delta is absent; at least one
    side must be present.
    """

    name: str
    values_to_add: Optional[List[Any]] = None
    values_to_remove: Optional[List[Any]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttributeDelta":
        """Build a delta from its JSON form.

        Raises:
            InvalidAttributeValueError: If a side is not a JSON array, or both are missing
        """
        name = data["name"]
        values_to_add = data.get("valuesToAdd")
        values_to_remove = data.get("valuesToRemove")
        for key, values in (("valuesToAdd", values_to_add), ("valuesToRemove", values_to_remove)):
            if values is not None and not isinstance(values, list):
                raise InvalidAttributeValueError(f"'{key}' of '{name}' must be a JSON array")
        if values_to_add is None and values_to_remove is None:
            raise InvalidAttributeValueError(f"Modification of '{name}' has neither valuesToAdd nor valuesToRemove")
        return cls(name=name, values_to_add=values_to_add, values_to_remove=values_to_remove)


@dataclass
class ConnectorObject:
    """A remote entity converted into the abstract attribute representation."""

    object_class: str
    uid: str
    name: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    incomplete: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "objectClass": self.object_class,
            "uid": self.uid,
            "name": self.name,
            "attributes": {k: _jsonable(v) for k, v in self.attributes.items()},
            "incompleteAttributes": sorted(self.incomplete),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


@dataclass
class SearchOptions:
    """Paging and attribute selection for one search call."""

    page_size: Optional[int] = None
    page_offset: Optional[int] = None
    attributes_to_get: Optional[List[str]] = None
    return_default_attributes: bool = False
    allow_partial_attribute_values: bool = False


@dataclass(frozen=True)
class SearchResult:
    """Completion signal sent after an explicit-offset search."""

    remaining_paged_results: int


def resolve_page_size(options: Optional[SearchOptions], default_size: int) -> int:
    """Requested page size, or the configured default.

    Raises:
        InvalidAttributeValueError: If a non-positive page size was requested
    """
    if options is None or options.page_size is None:
        return default_size
    if options.page_size < 1:
        raise InvalidAttributeValueError(f"Page size must be positive, got {options.page_size}")
    return options.page_size


def resolve_page_offset(options: Optional[SearchOptions]) -> int:
    """Host offsets start at 1; 0 means no paging was requested."""
    if options is not None and options.page_offset:
        return options.page_offset
    return 0


def should_allow_partial_attribute_values(options: Optional[SearchOptions]) -> bool:
    return bool(options and options.allow_partial_attribute_values)


def create_full_attributes_to_get(
    schema: "SchemaDefinition", options: Optional[SearchOptions]
) -> Dict[str, str]:
    """Combine returned-by-default attributes with explicitly requested ones.

    Args:
        schema: Schema of the searched object type
        options: Search options (may be None)

    Returns:
        Ordered mapping of attribute name to the remote field to fetch
    """
    requested = list(options.attributes_to_get or []) if options else []
    use_defaults = options is None or options.return_default_attributes or not requested

    result: Dict[str, str] = {}
    if use_defaults:
        result.update(schema.returned_by_default_fields)
    for name in requested:
        descriptor = schema.resolve(name)
        if descriptor is not None and descriptor.readable:
            result[descriptor.name] = descriptor.fetch_field
    return result
