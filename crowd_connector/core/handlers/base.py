"""Object handler base: read path shared by users and groups."""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Optional

from ..exceptions import UnknownUidError
from ..objects import ConnectorObject, Uid
from ..pagination import enumerate_pages
from ..schema import Kind, SchemaDefinition

logger = logging.getLogger(__name__)

ResultsHandler = Callable[[ConnectorObject], bool]


class ObjectHandler:
    """Orchestrates schema application and Crowd calls for one object class.

    Subclasses provide ``create_schema`` plus the write operations and the
    three fetch primitives (``_fetch_by_uid``, ``_fetch_by_name``,
    ``_fetch_page``).
    """

    object_class = ""

    def __init__(self, config, client, schema: SchemaDefinition):
        self.config = config
        self.client = client
        self.schema = schema

    # ─────────────────────────────────────────────────────────────────────────
    # Read path
    # ─────────────────────────────────────────────────────────────────────────

    def to_connector_object(self, entity: Any, attributes_to_get: Dict[str, str],
                            allow_partial_attribute_values: bool = False) -> ConnectorObject:
        """Convert a Crowd entity using only the requested readable attributes.

        Args:
            entity: Remote entity
            attributes_to_get: Attribute name → fetch field (see create_full_attributes_to_get)
            allow_partial_attribute_values: Report not-returned-by-default attributes as
                incomplete instead of invoking their getters

        Returns:
            ConnectorObject with empty values omitted
        """
        obj = ConnectorObject(
            object_class=self.object_class,
            uid=str(self.schema.uid.getter(entity)),
            name=self.schema.name.getter(entity),
        )

        for descriptor in self.schema:
            if descriptor.kind in (Kind.IDENTIFIER, Kind.DISPLAY_NAME):
                continue
            if descriptor.name not in attributes_to_get or not descriptor.readable:
                continue

            if allow_partial_attribute_values and not descriptor.returned_by_default:
                obj.incomplete.add(descriptor.name)
                continue

            value = descriptor.getter(entity)
            if value is None or value == [] or value == "":
                continue
            obj.attributes[descriptor.name] = value

        return obj

    def get_by_uid(self, uid: Uid, handler: ResultsHandler, attributes_to_get: Dict[str, str],
                   allow_partial_attribute_values: bool = False) -> int:
        entity = self._find(self._fetch_by_uid, uid.value)
        if entity is None:
            return 0
        handler(self.to_connector_object(entity, attributes_to_get, allow_partial_attribute_values))
        return 1

    def get_by_name(self, name: str, handler: ResultsHandler, attributes_to_get: Dict[str, str],
                    allow_partial_attribute_values: bool = False) -> int:
        entity = self._find(self._fetch_by_name, name)
        if entity is None:
            return 0
        handler(self.to_connector_object(entity, attributes_to_get, allow_partial_attribute_values))
        return 1

    def get_all(self, handler: ResultsHandler, attributes_to_get: Dict[str, str],
                allow_partial_attribute_values: bool, page_size: int, page_offset: int) -> int:
        return enumerate_pages(
            lambda entity: handler(
                self.to_connector_object(entity, attributes_to_get, allow_partial_attribute_values)
            ),
            page_size,
            page_offset,
            self._fetch_page,
        )

    def _find(self, fetch: Callable[[str], Any], key: str) -> Optional[Any]:
        try:
            return fetch(key)
        except UnknownUidError:
            logger.debug(f"No {self.object_class} matches '{key}'")
            return None

    # ─────────────────────────────────────────────────────────────────────────
    # Subclass hooks
    # ─────────────────────────────────────────────────────────────────────────

    def _fetch_by_uid(self, value: str) -> Any:
        raise NotImplementedError

    def _fetch_by_name(self, name: str) -> Any:
        raise NotImplementedError

    def _fetch_page(self, start: int, size: int) -> list:
        raise NotImplementedError
