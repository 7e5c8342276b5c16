"""Low-level HTTP client for the Crowd usermanagement REST API.

Handles application authentication, proxies, timeouts and error
classification. Every remote failure leaves this module as one of the
``crowd_connector.core.exceptions`` classes.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

import requests

from ..exceptions import ConnectorIOError, CrowdAPIError, classify
from ..objects import Uid
from .entities import GroupEntity, UserEntity, attributes_to_json

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}


class CrowdClient:
    """HTTP client for Crowd's usermanagement REST resource.

    Usage:
        client = CrowdClient(config)
        client.test()
        user = client.get_user("alice")
    """

    def __init__(self, config, session: Optional[requests.Session] = None):
        """Initialize Crowd client.

        Args:
            config: ConnectorConfig with server, credentials, proxy and timeouts
            session: Optional pre-built session (tests inject a stub)
        """
        self.base_url = config.rest_url
        self.timeout = config.timeouts
        self.session = session or requests.Session()
        self.session.auth = (config.application_name, config.application_password)
        self.session.headers.update(JSON_HEADERS)
        if config.proxy_url:
            self.session.proxies = {"http": config.proxy_url, "https": config.proxy_url}

    # ─────────────────────────────────────────────────────────────────────────
    # HTTP plumbing
    # ─────────────────────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                 json: Optional[Any] = None) -> requests.Response:
        """Execute a request and classify any failure.

        Raises:
            ConnectorError: Subclass matching the Crowd error reason / status
        """
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {path} params={params}")
        try:
            resp = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            raise ConnectorIOError(f"{method} {path} failed: {e}", e) from e
        self._handle_error(resp, path)
        return resp

    def _handle_error(self, resp: requests.Response, path: str) -> None:
        """Centralized error handling for HTTP responses."""
        if resp.status_code < 400:
            return
        reason, message = "", resp.text
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            reason = body.get("reason") or ""
            message = body.get("message") or message
        error = CrowdAPIError(resp.status_code, reason, message, path)
        raise classify(error) from error

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("GET", path, params=params).json()

    # ─────────────────────────────────────────────────────────────────────────
    # Connection
    # ─────────────────────────────────────────────────────────────────────────

    def test(self) -> None:
        """Verify the application credentials against Crowd."""
        self._request("GET", "/config/cookie")

    def close(self) -> None:
        self.session.close()

    # ─────────────────────────────────────────────────────────────────────────
    # Users
    # ─────────────────────────────────────────────────────────────────────────

    def get_user_by_key(self, key: str) -> UserEntity:
        """Fetch a user by its immutable key, custom attributes expanded.

        Raises:
            UnknownUidError: If no user has that key
        """
        data = self._get_json("/user", {"key": key, "expand": "attributes"})
        return UserEntity.from_json(data)

    def get_user(self, username: str) -> UserEntity:
        data = self._get_json("/user", {"username": username, "expand": "attributes"})
        return UserEntity.from_json(data)

    def create_user(self, entity: UserEntity, password: Optional[str] = None) -> Uid:
        """Create a user and return its key with the username as name hint.

        Crowd answers a create with a Location header only, so the key is read
        back from the new user.
        """
        payload = entity.to_json()
        if password is not None:
            payload["password"] = {"value": password}
        self._request("POST", "/user", json=payload)
        created = self.get_user(entity.name)
        return Uid(created.key or created.name, created.name)

    def update_user(self, entity: UserEntity) -> None:
        self._request("PUT", "/user", params={"username": entity.name}, json=entity.to_json())

    def store_user_attributes(self, username: str, attributes: Dict[str, Set[str]]) -> None:
        """Store final attribute value sets; an empty set removes the attribute."""
        self._request("POST", "/user/attribute", params={"username": username},
                      json=attributes_to_json(attributes))

    def update_password(self, username: str, password: str) -> None:
        self._request("PUT", "/user/password", params={"username": username}, json={"value": password})

    def rename_user(self, username: str, new_username: str) -> None:
        self._request("POST", "/user/rename", params={"username": username}, json={"new-name": new_username})

    def delete_user(self, uid: Uid) -> None:
        username = uid.name_hint or self.get_user_by_key(uid.value).name
        self._request("DELETE", "/user", params={"username": username})

    def search_users(self, start: int, size: int) -> List[UserEntity]:
        data = self._get_json("/search", {
            "entity-type": "user",
            "expand": "user,attributes",
            "start-index": start,
            "max-results": size,
        })
        return [UserEntity.from_json(u) for u in data.get("users") or []]

    def add_user_to_groups(self, username: str, groups: Iterable[str]) -> None:
        for group in groups:
            self._request("POST", "/user/group/direct", params={"username": username}, json={"name": group})

    def remove_user_from_groups(self, username: str, groups: Iterable[str]) -> None:
        for group in groups:
            self._request("DELETE", "/user/group/direct", params={"username": username, "groupname": group})

    def get_groups_for_user(self, username: str, start: int, size: int) -> List[str]:
        data = self._get_json("/user/group/direct", {
            "username": username,
            "start-index": start,
            "max-results": size,
        })
        return [g["name"] for g in data.get("groups") or []]

    # ─────────────────────────────────────────────────────────────────────────
    # Groups (the group name doubles as its identifier)
    # ─────────────────────────────────────────────────────────────────────────

    def get_group(self, groupname: str) -> GroupEntity:
        data = self._get_json("/group", {"groupname": groupname, "expand": "attributes"})
        return GroupEntity.from_json(data)

    def create_group(self, entity: GroupEntity) -> Uid:
        self._request("POST", "/group", json=entity.to_json())
        return Uid(entity.name, entity.name)

    def update_group(self, entity: GroupEntity) -> None:
        self._request("PUT", "/group", params={"groupname": entity.name}, json=entity.to_json())

    def store_group_attributes(self, groupname: str, attributes: Dict[str, Set[str]]) -> None:
        self._request("POST", "/group/attribute", params={"groupname": groupname},
                      json=attributes_to_json(attributes))

    def rename_group(self, groupname: str, new_groupname: str) -> None:
        self._request("POST", "/group/rename", params={"groupname": groupname}, json={"new-name": new_groupname})

    def delete_group(self, uid: Uid) -> None:
        self._request("DELETE", "/group", params={"groupname": uid.value})

    def search_groups(self, start: int, size: int) -> List[GroupEntity]:
        data = self._get_json("/search", {
            "entity-type": "group",
            "expand": "group,attributes",
            "start-index": start,
            "max-results": size,
        })
        return [GroupEntity.from_json(g) for g in data.get("groups") or []]

    def add_group_to_groups(self, groupname: str, parents: Iterable[str]) -> None:
        for parent in parents:
            self._request("POST", "/group/parent-group/direct", params={"groupname": groupname},
                          json={"name": parent})

    def remove_group_from_groups(self, groupname: str, parents: Iterable[str]) -> None:
        for parent in parents:
            self._request("DELETE", "/group/parent-group/direct",
                          params={"groupname": groupname, "parent-groupname": parent})

    def get_parent_groups(self, groupname: str, start: int, size: int) -> List[str]:
        data = self._get_json("/group/parent-group/direct", {
            "groupname": groupname,
            "start-index": start,
            "max-results": size,
        })
        return [g["name"] for g in data.get("groups") or []]
