"""Crowd connector session.

One ``CrowdConnector`` owns the Crowd client, the per-object-class schemas and
their handlers for its whole lifetime: ``init()`` builds them, ``dispose()``
tears them down. Operations never rebuild the schema lazily.

Usage:
    connector = CrowdConnector(load_settings())
    connector.init()
    uid = connector.create("user", {"username": "alice", "groups": ["dev"]})
    connector.update_delta("user", uid, [AttributeDelta("email", ["a@example.com"])])
    connector.dispose()
"""
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from crowd_connector.config import ConnectorConfig, load_settings
from crowd_connector.core.crowd import CrowdClient
from crowd_connector.core.exceptions import (
    AlreadyExistsError,
    ConnectorError,
    ConnectorIOError,
    InvalidAttributeValueError,
    UnknownUidError,
)
from crowd_connector.core.filters import CrowdFilter
from crowd_connector.core.handlers import GroupHandler, ObjectHandler, UserHandler
from crowd_connector.core.handlers import groups as group_handlers
from crowd_connector.core.handlers import users as user_handlers
from crowd_connector.core.objects import (
    AttributeDelta,
    ConnectorObject,
    SearchOptions,
    SearchResult,
    Uid,
    create_full_attributes_to_get,
    resolve_page_offset,
    resolve_page_size,
    should_allow_partial_attribute_values,
)

logger = logging.getLogger(__name__)


class CrowdConnector:
    """Connector session over one Crowd application."""

    def __init__(self, config: Optional[ConnectorConfig] = None, client: Optional[CrowdClient] = None):
        """Initialize connector session.

        Args:
            config: Connector configuration (loaded from the environment if omitted)
            client: Pre-built Crowd client (tests inject a fake)
        """
        self.config = config
        self.client = client
        self._handlers: Dict[str, ObjectHandler] = {}

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def init(self) -> "CrowdConnector":
        """Validate config, connect and build the schemas.

        Raises:
            ConfigurationError: If required settings are missing
        """
        try:
            if self.config is None:
                self.config = load_settings()
            self.config.validate()
            if self.client is None:
                self.client = CrowdClient(self.config)

            user_schema = user_handlers.create_schema(self.config, self.client)
            group_schema = group_handlers.create_schema(self.config, self.client)
            self._handlers = {
                user_schema.object_class: UserHandler(self.config, self.client, user_schema),
                group_schema.object_class: GroupHandler(self.config, self.client, group_schema),
            }
        except Exception as e:
            raise self._process_exception("init", e)

        logger.info(f"Connector '{self.config.instance_name}' successfully initialized")
        return self

    def dispose(self) -> None:
        if self.client is not None:
            self.client.close()
        self.client = None
        self._handlers = {}

    @property
    def initialized(self) -> bool:
        return bool(self._handlers)

    def _require_initialized(self) -> None:
        if not self._handlers:
            raise ConnectorError("Connector is not initialized")

    def _handler(self, object_class: str) -> ObjectHandler:
        self._require_initialized()
        handler = self._handlers.get(object_class)
        if handler is None:
            raise InvalidAttributeValueError(f"Unsupported object class '{object_class}'")
        return handler

    # ─────────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────────

    def test(self) -> None:
        """Re-check the Crowd connection."""
        self._require_initialized()
        try:
            self.client.test()
        except Exception as e:
            raise self._process_exception("test", e)
        logger.info(f"Connection test OK for '{self.config.instance_name}'")

    def schema(self) -> Dict[str, Any]:
        """Object classes with their attribute metadata."""
        self._require_initialized()
        return {
            "objectClasses": [h.schema.to_object_class_info() for h in self._handlers.values()]
        }

    def create(self, object_class: str, attributes: Dict[str, Any]) -> Uid:
        try:
            return self._handler(object_class).create(attributes)
        except Exception as e:
            raise self._process_exception("create", e)

    def update_delta(self, object_class: str, uid: Uid, modifications: Iterable[AttributeDelta]) -> None:
        try:
            self._handler(object_class).update_delta(uid, list(modifications))
        except UnknownUidError:
            logger.warning(f"Object not found when updating. objectClass: {object_class}, uid: {uid}")
            raise
        except Exception as e:
            raise self._process_exception("update", e)

    def delete(self, object_class: str, uid: Uid) -> None:
        try:
            self._handler(object_class).delete(uid)
        except UnknownUidError:
            logger.warning(f"Object not found when deleting. objectClass: {object_class}, uid: {uid}")
            raise
        except Exception as e:
            raise self._process_exception("delete", e)

    def search(self, object_class: str, query: Optional[CrowdFilter],
               handler: Callable[[ConnectorObject], bool],
               options: Optional[SearchOptions] = None,
               on_complete: Optional[Callable[[SearchResult], None]] = None) -> int:
        """Run a search and feed each matching object to ``handler``.

        Args:
            object_class: "user" or "group"
            query: Filter by uid or name, or None for all objects
            handler: Called per object; returning False stops the search
            options: Paging and attribute selection
            on_complete: Receives the remaining-results count after an explicit-offset search

        Returns:
            Number of objects delivered to the handler
        """
        try:
            object_handler = self._handler(object_class)
            attributes_to_get = create_full_attributes_to_get(object_handler.schema, options)
            allow_partial = should_allow_partial_attribute_values(options)
            page_size = resolve_page_size(options, self.config.default_query_page_size)
            page_offset = resolve_page_offset(options)

            if query is not None and query.is_uid_search:
                total = object_handler.get_by_uid(Uid(query.uid), handler, attributes_to_get, allow_partial)
            elif query is not None and query.is_name_search:
                total = object_handler.get_by_name(query.name, handler, attributes_to_get, allow_partial)
            else:
                total = object_handler.get_all(handler, attributes_to_get, allow_partial, page_size, page_offset)
        except Exception as e:
            raise self._process_exception("search", e)

        if on_complete is not None and page_offset > 0:
            on_complete(SearchResult(remaining_paged_results=total - page_size * page_offset))
        return total

    def get(self, object_class: str, uid: Uid, options: Optional[SearchOptions] = None) -> Optional[ConnectorObject]:
        """Fetch one object by uid, or None when it does not exist."""
        found = []
        self.search(object_class, CrowdFilter.by_uid(uid.value), lambda obj: found.append(obj) or True, options)
        return found[0] if found else None

    # ─────────────────────────────────────────────────────────────────────────
    # Error handling
    # ─────────────────────────────────────────────────────────────────────────

    def _process_exception(self, operation: str, error: Exception) -> ConnectorError:
        """Log a failure and return the exception to raise.

        Connector errors pass through unchanged; anything else is wrapped in
        ConnectorIOError with its message kept.
        """
        if isinstance(error, AlreadyExistsError):
            logger.warning(f"Detected the object already exists during {operation}: {error.message}")
            return error
        if isinstance(error, ConnectorError):
            logger.error(f"Detected Crowd connector error during {operation}: {error.message}", exc_info=error)
            return error
        logger.error(f"Detected Crowd connector unexpected error during {operation}: {error}", exc_info=error)
        wrapped = ConnectorIOError(str(error), error)
        wrapped.__cause__ = error
        return wrapped
