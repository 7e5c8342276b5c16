"""Crowd user handler: schema, create and delta update."""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List

from ..crowd.entities import UserEntity
from ..exceptions import InvalidAttributeValueError
from ..models import UserModel
from ..objects import ENABLE_NAME, PASSWORD_NAME, AttributeDelta, Uid
from ..pagination import fetch_all
from ..schema import Flags, SchemaBuilder, SchemaDefinition, Types, add_custom_attributes
from .base import ObjectHandler

logger = logging.getLogger(__name__)

USER_OBJECT_CLASS = "user"


def create_schema(config, client) -> SchemaDefinition:
    """Build the user schema, including the configured custom attributes."""
    sb = SchemaBuilder(USER_OBJECT_CLASS)

    # __UID__: immutable key assigned by Crowd
    sb.add_uid("key", Types.UUID, lambda e: e.key, Flags.REQUIRED)

    # __NAME__: unique, case-insensitive, renameable
    sb.add_name("username", Types.STRING, lambda v, m: m.set_user_name(v), lambda e: e.name, Flags.REQUIRED)

    sb.add(PASSWORD_NAME, Types.GUARDED_STRING, lambda v, m: m.set_password(v), None,
           Flags.NOT_READABLE, Flags.NOT_RETURNED_BY_DEFAULT)
    sb.add(ENABLE_NAME, Types.BOOLEAN, lambda v, m: m.set_active(v), lambda e: e.active, field="active")

    sb.add("last-name", Types.STRING, lambda v, m: m.set_last_name(v), lambda e: e.last_name)
    sb.add("first-name", Types.STRING, lambda v, m: m.set_first_name(v), lambda e: e.first_name)
    sb.add("display-name", Types.STRING, lambda v, m: m.set_display_name(v), lambda e: e.display_name)
    sb.add("email", Types.STRING, lambda v, m: m.set_email(v), lambda e: e.email)

    add_custom_attributes(sb, config.user_attributes_schema)

    # Direct group memberships, paged separately from the user itself
    page_size = config.default_query_page_size
    sb.add_as_multiple(
        "groups", Types.STRING,
        lambda v, m: m.add_groups(v),
        lambda v, m: m.remove_groups(v),
        lambda e: fetch_all(lambda start, size: client.get_groups_for_user(e.name, start, size), page_size),
        Flags.NOT_RETURNED_BY_DEFAULT,
    )

    sb.add("created-date", Types.DATETIME, None, lambda e: e.created_date,
           Flags.NOT_CREATABLE, Flags.NOT_UPDATEABLE)
    sb.add("updated-date", Types.DATETIME, None, lambda e: e.updated_date,
           Flags.NOT_CREATABLE, Flags.NOT_UPDATEABLE)

    schema = sb.build()
    logger.info(f"Constructed user schema with {len(schema)} attribute(s)")
    return schema


class UserHandler(ObjectHandler):
    """Users are addressed by key on the host side and by username in Crowd."""

    object_class = USER_OBJECT_CLASS

    def create(self, attributes: Dict[str, Any]) -> Uid:
        """Create a user, then its memberships, then its custom attributes.

        Raises:
            InvalidAttributeValueError: If no username was supplied
            AlreadyExistsError: If the username is taken
        """
        model = self.schema.apply(attributes, UserModel.create())
        if not model.new_name:
            raise InvalidAttributeValueError("Attribute 'username' is required to create a user")

        uid = self.client.create_user(model.to_entity(), model.password)
        name = uid.name_hint or model.new_name

        if model.relations_added and model.pending_relation_add:
            self.client.add_user_to_groups(name, model.pending_relation_add)
        if model.attributes_changed:
            self.client.store_user_attributes(name, model.changed_attributes())

        logger.info(f"Created user '{name}' (key={uid.value})")
        return uid

    def update_delta(self, uid: Uid, modifications: Iterable[AttributeDelta]) -> None:
        """Fetch the current user, diff, and issue only the calls the flags demand.

        Raises:
            UnknownUidError: If no user has that key
        """
        current = self.client.get_user_by_key(uid.value)
        model = self.schema.apply_delta(modifications, UserModel.from_entity(current))
        if model.display_name_changed and not model.new_name:
            raise InvalidAttributeValueError("Attribute 'username' cannot be cleared")

        name = current.name
        if model.core_fields_changed:
            self.client.update_user(model.to_entity().copy(name=name))
        if model.display_name_changed and model.new_name != name:
            self.client.rename_user(name, model.new_name)
            name = model.new_name
        if model.secret_changed:
            self.client.update_password(name, model.password)
        if model.attributes_changed:
            self.client.store_user_attributes(name, model.changed_attributes())
        if model.relations_added:
            self.client.add_user_to_groups(name, model.pending_relation_add)
        if model.relations_removed:
            self.client.remove_user_from_groups(name, model.pending_relation_remove)

    def delete(self, uid: Uid) -> None:
        self.client.delete_user(uid)

    def _fetch_by_uid(self, value: str) -> UserEntity:
        return self.client.get_user_by_key(value)

    def _fetch_by_name(self, name: str) -> UserEntity:
        return self.client.get_user(name)

    def _fetch_page(self, start: int, size: int) -> List[UserEntity]:
        return self.client.search_users(start, size)
