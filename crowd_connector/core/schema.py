"""Declarative schema mapping between abstract attributes and Crowd entities.

A ``SchemaDefinition`` is an ordered registry of attribute descriptors for one
object class. Each descriptor carries plain closures that move values between
the abstract attribute representation and a staging model (write path) or a
remote entity (read path).

Usage:
    sb = SchemaBuilder("user")
    sb.add_uid("key", Types.UUID, lambda e: e.key)
    sb.add_name("username", Types.STRING, lambda v, m: m.set_user_name(v), lambda e: e.name)
    sb.add("email", Types.STRING, lambda v, m: m.set_email(v), lambda e: e.email)
    schema = sb.build()

    model = schema.apply({"username": "alice"}, UserModel.create())
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .exceptions import InvalidAttributeValueError
from .objects import NAME_NAME, UID_NAME, AttributeDelta

logger = logging.getLogger(__name__)

CUSTOM_ATTRIBUTE_PREFIX = "attributes."
SUPPORTED_CUSTOM_TYPES = {"string", "stringarray"}


class Types(str, Enum):
    """Semantic type of an attribute value."""

    STRING = "string"
    STRING_CASE_IGNORE = "stringCaseIgnore"
    BOOLEAN = "boolean"
    GUARDED_STRING = "guardedString"
    DATETIME = "dateTime"
    UUID = "uuid"


class Flags(str, Enum):
    REQUIRED = "REQUIRED"
    NOT_CREATABLE = "NOT_CREATABLE"
    NOT_UPDATEABLE = "NOT_UPDATEABLE"
    NOT_READABLE = "NOT_READABLE"
    NOT_RETURNED_BY_DEFAULT = "NOT_RETURNED_BY_DEFAULT"


class Kind(str, Enum):
    IDENTIFIER = "identifier"
    DISPLAY_NAME = "displayName"
    SINGLE = "single"
    MULTI_VALUED = "multiValued"


Getter = Callable[[Any], Any]
Setter = Callable[[Any, Any], None]
MultiSetter = Callable[[List[Any], Any], None]


# ─────────────────────────────────────────────────────────────────────────────
# Attribute descriptors
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class AttributeDescriptor:
    """One logical attribute of a schema.

    Attributes:
        name: Unique key within the schema (``attributes.<x>`` for custom ones)
        type: Semantic type of the value
        getter: Reads the value from a remote entity, or None if write-only
        remote_field_hint: Remote resource field used to narrow fetches
        flags: Capability flags
    """

    name: str
    type: Types
    getter: Optional[Getter] = None
    remote_field_hint: Optional[str] = None
    flags: FrozenSet[Flags] = frozenset()

    kind = Kind.SINGLE

    @property
    def host_name(self) -> str:
        return self.name

    @property
    def fetch_field(self) -> str:
        return self.remote_field_hint or self.name

    @property
    def required(self) -> bool:
        return Flags.REQUIRED in self.flags

    @property
    def creatable(self) -> bool:
        return Flags.NOT_CREATABLE not in self.flags

    @property
    def updateable(self) -> bool:
        return Flags.NOT_UPDATEABLE not in self.flags

    @property
    def readable(self) -> bool:
        return Flags.NOT_READABLE not in self.flags and self.getter is not None

    @property
    def returned_by_default(self) -> bool:
        return Flags.NOT_RETURNED_BY_DEFAULT not in self.flags

    @property
    def multi_valued(self) -> bool:
        return self.kind is Kind.MULTI_VALUED

    def to_info(self) -> Dict[str, Any]:
        """Attribute metadata as exposed to the host."""
        return {
            "name": self.host_name,
            "nativeName": self.name,
            "type": self.type.value,
            "required": self.required,
            "creatable": self.creatable,
            "updateable": self.updateable,
            "readable": self.readable,
            "multiValued": self.multi_valued,
            "returnedByDefault": self.returned_by_default,
        }


@dataclass(frozen=True)
class IdentifierAttribute(AttributeDescriptor):
    """Server-assigned, immutable identifier. Never written by apply paths."""

    kind = Kind.IDENTIFIER

    @property
    def host_name(self) -> str:
        return UID_NAME

    @property
    def creatable(self) -> bool:
        return False

    @property
    def updateable(self) -> bool:
        return False


@dataclass(frozen=True)
class DisplayNameAttribute(AttributeDescriptor):
    """Unique, case-insensitive, mutable primary name of the object."""

    setter: Optional[Setter] = None

    kind = Kind.DISPLAY_NAME

    @property
    def host_name(self) -> str:
        return NAME_NAME


@dataclass(frozen=True)
class SingleAttribute(AttributeDescriptor):
    setter: Optional[Setter] = None

    kind = Kind.SINGLE


@dataclass(frozen=True)
class MultiValuedAttribute(AttributeDescriptor):
    """Multi-valued attribute with incremental add/remove semantics."""

    adder: Optional[MultiSetter] = None
    remover: Optional[MultiSetter] = None

    kind = Kind.MULTI_VALUED


# ─────────────────────────────────────────────────────────────────────────────
# Schema definition
# ─────────────────────────────────────────────────────────────────────────────

class SchemaDefinition:
    """Immutable, ordered collection of descriptors for one object class."""

    def __init__(self, object_class: str, descriptors: Iterable[AttributeDescriptor]):
        self.object_class = object_class
        self.descriptors: Tuple[AttributeDescriptor, ...] = tuple(descriptors)
        self._by_name = {d.name: d for d in self.descriptors}
        self.uid = next(d for d in self.descriptors if d.kind is Kind.IDENTIFIER)
        self.name = next(d for d in self.descriptors if d.kind is Kind.DISPLAY_NAME)

    def __len__(self) -> int:
        return len(self.descriptors)

    def __iter__(self):
        return iter(self.descriptors)

    def resolve(self, name: str) -> Optional[AttributeDescriptor]:
        """Find a descriptor by name, accepting ``__UID__`` / ``__NAME__``."""
        if name == UID_NAME:
            return self.uid
        if name == NAME_NAME:
            return self.name
        return self._by_name.get(name)

    def _require(self, name: str) -> AttributeDescriptor:
        descriptor = self.resolve(name)
        if descriptor is None:
            raise InvalidAttributeValueError(
                f"Invalid attribute '{name}' for object class '{self.object_class}'"
            )
        return descriptor

    @cached_property
    def returned_by_default_fields(self) -> Dict[str, str]:
        """Readable, returned-by-default attributes mapped to their fetch fields."""
        return {
            d.name: d.fetch_field
            for d in self.descriptors
            if d.readable and d.returned_by_default
        }

    def apply(self, attributes: Mapping[str, Any], model: Any) -> Any:
        """Apply a full create request to a fresh staging model.

        Args:
            attributes: Abstract attributes keyed by attribute name
            model: Fresh staging model

        Returns:
            The same model, populated
        """
        for attr_name, value in attributes.items():
            descriptor = self._require(attr_name)

            if descriptor.kind is Kind.IDENTIFIER:
                continue
            if not descriptor.creatable:
                logger.debug(f"Skipping non-creatable attribute '{descriptor.name}'")
                continue

            if isinstance(descriptor, MultiValuedAttribute):
                descriptor.adder(_as_list(value), model)
            else:
                descriptor.setter(_as_single(value), model)

        return model

    def apply_delta(self, deltas: Iterable[AttributeDelta], model: Any) -> Any:
        """Apply update deltas to a staging model seeded from the current entity.

        Single-valued: the first added value becomes the new value; an empty
        add list (or a bare remove) clears it. Multi-valued: adds first, then
        removes, both through the descriptor's closures.

        Raises:
            InvalidAttributeValueError: If a delta names an unknown attribute or
                carries neither values to add nor values to remove
        """
        for delta in deltas:
            descriptor = self._require(delta.name)
            if delta.values_to_add is None and delta.values_to_remove is None:
                raise InvalidAttributeValueError(f"Modification of '{delta.name}' carries no values")

            if descriptor.kind is Kind.IDENTIFIER:
                continue
            if not descriptor.updateable:
                logger.debug(f"Skipping non-updateable attribute '{descriptor.name}'")
                continue

            if isinstance(descriptor, MultiValuedAttribute):
                if delta.values_to_add is not None:
                    descriptor.adder(list(delta.values_to_add), model)
                if delta.values_to_remove is not None:
                    descriptor.remover(list(delta.values_to_remove), model)
                continue

            if delta.values_to_add is not None:
                value = delta.values_to_add[0] if delta.values_to_add else None
            else:
                value = None
            descriptor.setter(value, model)

        return model

    def attribute_infos(self) -> List[Dict[str, Any]]:
        return [d.to_info() for d in self.descriptors]

    def to_object_class_info(self) -> Dict[str, Any]:
        return {"type": self.object_class, "attributes": self.attribute_infos()}


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _as_single(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


# ─────────────────────────────────────────────────────────────────────────────
# Builder
# ─────────────────────────────────────────────────────────────────────────────

class SchemaBuilder:
    """Fluent builder for ``SchemaDefinition``."""

    def __init__(self, object_class: str):
        self.object_class = object_class
        self._descriptors: List[AttributeDescriptor] = []

    def add_uid(self, name: str, type_: Types, getter: Getter, *flags: Flags,
                field: Optional[str] = None) -> "SchemaBuilder":
        return self._append(IdentifierAttribute(
            name, type_, getter, field, frozenset(flags) | {Flags.NOT_CREATABLE, Flags.NOT_UPDATEABLE},
        ))

    def add_name(self, name: str, type_: Types, setter: Setter, getter: Getter, *flags: Flags,
                 field: Optional[str] = None) -> "SchemaBuilder":
        return self._append(DisplayNameAttribute(name, type_, getter, field, frozenset(flags), setter=setter))

    def add(self, name: str, type_: Types, setter: Optional[Setter], getter: Optional[Getter],
            *flags: Flags, field: Optional[str] = None) -> "SchemaBuilder":
        descriptor = SingleAttribute(name, type_, getter, field, frozenset(flags), setter=setter)
        writable = descriptor.creatable or descriptor.updateable
        if setter is None and writable:
            raise ValueError(f"Attribute '{name}' needs a setter unless it is read-only")
        if getter is None and Flags.NOT_READABLE not in descriptor.flags:
            raise ValueError(f"Attribute '{name}' needs a getter unless it is NOT_READABLE")
        return self._append(descriptor)

    def add_as_multiple(self, name: str, type_: Types, adder: MultiSetter, remover: MultiSetter,
                        getter: Getter, *flags: Flags, field: Optional[str] = None) -> "SchemaBuilder":
        if adder is None or remover is None or getter is None:
            raise ValueError(f"Multi-valued attribute '{name}' needs adder, remover and getter")
        return self._append(MultiValuedAttribute(
            name, type_, getter, field, frozenset(flags), adder=adder, remover=remover,
        ))

    def _append(self, descriptor: AttributeDescriptor) -> "SchemaBuilder":
        if any(d.name == descriptor.name for d in self._descriptors):
            raise ValueError(f"Duplicate attribute '{descriptor.name}' in '{self.object_class}' schema")
        self._descriptors.append(descriptor)
        return self

    def build(self) -> SchemaDefinition:
        uids = [d for d in self._descriptors if d.kind is Kind.IDENTIFIER]
        names = [d for d in self._descriptors if d.kind is Kind.DISPLAY_NAME]
        if len(uids) != 1 or len(names) != 1:
            raise ValueError(
                f"Schema '{self.object_class}' needs exactly one identifier and one name attribute"
            )
        return SchemaDefinition(self.object_class, self._descriptors)


# ─────────────────────────────────────────────────────────────────────────────
# Custom attributes ("name$type" tokens)
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CustomAttribute:
    name: str
    multi_valued: bool = False

    @property
    def schema_name(self) -> str:
        return CUSTOM_ATTRIBUTE_PREFIX + self.name


def parse_custom_attributes(tokens: Iterable[str]) -> List[CustomAttribute]:
    """Parse ``name$string`` / ``name$stringArray`` tokens, dropping malformed ones."""
    result: List[CustomAttribute] = []
    for token in tokens:
        parts = token.strip().split("$")
        if len(parts) != 2 or not parts[0]:
            logger.warning(f"Ignoring malformed custom attribute definition '{token}'")
            continue
        attr_name, attr_type = parts[0], parts[1].lower()
        if attr_type not in SUPPORTED_CUSTOM_TYPES:
            logger.warning(f"Ignoring custom attribute '{attr_name}' with unsupported type '{parts[1]}'")
            continue
        result.append(CustomAttribute(attr_name, attr_type.endswith("array")))
    return result


def _single_setter(key: str) -> Setter:
    return lambda value, model: model.replace_attribute(key, value)


def _single_getter(key: str) -> Getter:
    return lambda entity: entity.get_value(key)


def _multi_adder(key: str) -> MultiSetter:
    return lambda values, model: model.add_attributes(key, values)


def _multi_remover(key: str) -> MultiSetter:
    return lambda values, model: model.remove_attributes(key, values)


def _multi_getter(key: str) -> Getter:
    return lambda entity: list(entity.get_values(key) or [])


def add_custom_attributes(builder: SchemaBuilder, tokens: Iterable[str]) -> SchemaBuilder:
    """Register descriptors for runtime-configured custom attributes.

    Staging models must offer ``replace_attribute`` / ``add_attributes`` /
    ``remove_attributes``; entities must offer ``get_value`` / ``get_values``.
    """
    for custom in parse_custom_attributes(tokens):
        if custom.multi_valued:
            builder.add_as_multiple(
                custom.schema_name, Types.STRING,
                _multi_adder(custom.name), _multi_remover(custom.name), _multi_getter(custom.name),
            )
        else:
            builder.add(
                custom.schema_name, Types.STRING,
                _single_setter(custom.name), _single_getter(custom.name),
            )
    return builder
