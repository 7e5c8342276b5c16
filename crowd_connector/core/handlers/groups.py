"""Crowd group handler: schema, create and delta update."""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List

from ..crowd.entities import GroupEntity
from ..exceptions import InvalidAttributeValueError
from ..models import GroupModel
from ..objects import ENABLE_NAME, AttributeDelta, Uid
from ..pagination import fetch_all
from ..schema import Flags, SchemaBuilder, SchemaDefinition, Types, add_custom_attributes
from .base import ObjectHandler

logger = logging.getLogger(__name__)

GROUP_OBJECT_CLASS = "group"


def create_schema(config, client) -> SchemaDefinition:
    """Build the group schema. Crowd has no group key, so the name is the identifier."""
    sb = SchemaBuilder(GROUP_OBJECT_CLASS)

    sb.add_uid("key", Types.STRING_CASE_IGNORE, lambda e: e.name, field="name")
    sb.add_name("groupname", Types.STRING_CASE_IGNORE, lambda v, m: m.set_group_name(v), lambda e: e.name,
                Flags.REQUIRED, field="name")

    sb.add(ENABLE_NAME, Types.BOOLEAN, lambda v, m: m.set_active(v), lambda e: e.active, field="active")
    sb.add("description", Types.STRING, lambda v, m: m.set_description(v), lambda e: e.description)

    add_custom_attributes(sb, config.group_attributes_schema)

    # Direct parent groups
    page_size = config.default_query_page_size
    sb.add_as_multiple(
        "groups", Types.STRING,
        lambda v, m: m.add_groups(v),
        lambda v, m: m.remove_groups(v),
        lambda e: fetch_all(lambda start, size: client.get_parent_groups(e.name, start, size), page_size),
        Flags.NOT_RETURNED_BY_DEFAULT,
    )

    schema = sb.build()
    logger.info(f"Constructed group schema with {len(schema)} attribute(s)")
    return schema


class GroupHandler(ObjectHandler):
    object_class = GROUP_OBJECT_CLASS

    def create(self, attributes: Dict[str, Any]) -> Uid:
        """Create a group, then its parent memberships, then its custom attributes."""
        model = self.schema.apply(attributes, GroupModel.create())
        if not model.new_name:
            raise InvalidAttributeValueError("Attribute 'groupname' is required to create a group")

        uid = self.client.create_group(model.to_entity())

        if model.relations_added and model.pending_relation_add:
            self.client.add_group_to_groups(model.new_name, model.pending_relation_add)
        if model.attributes_changed:
            self.client.store_group_attributes(model.new_name, model.changed_attributes())

        logger.info(f"Created group '{model.new_name}'")
        return uid

    def update_delta(self, uid: Uid, modifications: Iterable[AttributeDelta]) -> None:
        """Apply deltas; calls after a rename address the group by its new name.

        Raises:
            UnknownUidError: If the group does not exist
        """
        current = self.client.get_group(uid.value)
        model = self.schema.apply_delta(modifications, GroupModel.from_entity(current))
        if model.display_name_changed and not model.new_name:
            raise InvalidAttributeValueError("Attribute 'groupname' cannot be cleared")

        name = current.name
        if model.core_fields_changed:
            self.client.update_group(model.to_entity().copy(name=name))
        if model.display_name_changed and model.new_name != name:
            self.client.rename_group(name, model.new_name)
            name = model.new_name
        if model.attributes_changed:
            self.client.store_group_attributes(name, model.changed_attributes())
        if model.relations_added:
            self.client.add_group_to_groups(name, model.pending_relation_add)
        if model.relations_removed:
            self.client.remove_group_from_groups(name, model.pending_relation_remove)

    def delete(self, uid: Uid) -> None:
        self.client.delete_group(uid)

    def _fetch_by_uid(self, value: str) -> GroupEntity:
        return self.client.get_group(value)

    def _fetch_by_name(self, name: str) -> GroupEntity:
        return self.client.get_group(name)

    def _fetch_page(self, start: int, size: int) -> List[GroupEntity]:
        return self.client.search_groups(start, size)
