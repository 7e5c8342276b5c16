"""Pytest shared fixtures for connector tests."""
import pathlib
import sys
from typing import Dict, List

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
import requests

from crowd_connector.config.settings import ConnectorConfig
from crowd_connector.connector import CrowdConnector
from crowd_connector.core.crowd.entities import GroupEntity, UserEntity
from crowd_connector.core.exceptions import AlreadyExistsError, UnknownUidError
from crowd_connector.core.objects import Uid


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from reaching a real Crowd server.

    Integration tests are explicitly marked with @pytest.mark.integration and
    are allowed to perform real HTTP calls by skipping this fixture.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _stub_request(self, method, url, *args, **kwargs):
        raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")

    monkeypatch.setattr(requests.Session, "request", _stub_request)


# ─────────────────────────────────────────────────────────────────────────────
# In-memory Crowd
# ─────────────────────────────────────────────────────────────────────────────
class FakeCrowdClient:
    """In-memory stand-in for CrowdClient that records every call."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.users: Dict[str, UserEntity] = {}
        self.groups: Dict[str, GroupEntity] = {}
        self.user_groups: Dict[str, List[str]] = {}
        self.parent_groups: Dict[str, List[str]] = {}
        self.passwords: Dict[str, str] = {}
        self.closed = False
        self._next_key = 1

    # Seeding helpers (not recorded)
    def seed_user(self, name: str, **fields) -> UserEntity:
        fields.setdefault("key", f"key-{self._next_key}")
        self._next_key += 1
        user = UserEntity(name=name, **fields)
        self.users[name] = user
        return user

    def seed_group(self, name: str, **fields) -> GroupEntity:
        group = GroupEntity(name=name, **fields)
        self.groups[name] = group
        return group

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]

    def _record(self, name, *args):
        self.calls.append((name,) + args)

    def _user(self, name: str) -> UserEntity:
        if name not in self.users:
            raise UnknownUidError(f"User <{name}> does not exist")
        return self.users[name]

    def _group(self, name: str) -> GroupEntity:
        if name not in self.groups:
            raise UnknownUidError(f"Group <{name}> does not exist")
        return self.groups[name]

    @staticmethod
    def _store(target: dict, attributes: dict) -> None:
        for key, values in attributes.items():
            if values:
                target[key] = sorted(values)
            else:
                target.pop(key, None)

    # Connection
    def test(self):
        self._record("test")

    def close(self):
        self.closed = True

    # Users
    def get_user_by_key(self, key):
        self._record("get_user_by_key", key)
        for user in self.users.values():
            if user.key == key:
                return user.copy()
        raise UnknownUidError(f"User with key <{key}> does not exist")

    def get_user(self, name):
        self._record("get_user", name)
        return self._user(name).copy()

    def create_user(self, entity, password=None):
        self._record("create_user", entity.copy(), password)
        if entity.name in self.users:
            raise AlreadyExistsError(f"User <{entity.name}> already exists")
        created = self.seed_user(entity.name, **{
            "first_name": entity.first_name,
            "last_name": entity.last_name,
            "display_name": entity.display_name,
            "email": entity.email,
            "active": entity.active,
        })
        if password is not None:
            self.passwords[entity.name] = password
        return Uid(created.key, created.name)

    def update_user(self, entity):
        self._record("update_user", entity.copy())
        current = self._user(entity.name)
        self.users[entity.name] = entity.copy(key=current.key, attributes=dict(current.attributes))

    def store_user_attributes(self, name, attributes):
        self._record("store_user_attributes", name, {k: set(v) for k, v in attributes.items()})
        self._store(self._user(name).attributes, attributes)

    def update_password(self, name, password):
        self._record("update_password", name, password)
        self._user(name)
        self.passwords[name] = password

    def rename_user(self, name, new_name):
        self._record("rename_user", name, new_name)
        user = self.users.pop(name)
        user.name = new_name
        self.users[new_name] = user

    def delete_user(self, uid):
        self._record("delete_user", uid)
        name = uid.name_hint or self.get_user_by_key(uid.value).name
        self._user(name)
        del self.users[name]

    def search_users(self, start, size):
        self._record("search_users", start, size)
        return [u.copy() for u in sorted(self.users.values(), key=lambda u: u.name)][start:start + size]

    def add_user_to_groups(self, name, groups):
        self._record("add_user_to_groups", name, list(groups))
        self.user_groups.setdefault(name, []).extend(groups)

    def remove_user_from_groups(self, name, groups):
        self._record("remove_user_from_groups", name, list(groups))
        current = self.user_groups.get(name, [])
        for group in groups:
            if group in current:
                current.remove(group)

    def get_groups_for_user(self, name, start, size):
        self._record("get_groups_for_user", name, start, size)
        return list(self.user_groups.get(name, []))[start:start + size]

    # Groups
    def get_group(self, name):
        self._record("get_group", name)
        return self._group(name).copy()

    def create_group(self, entity):
        self._record("create_group", entity.copy())
        if entity.name in self.groups:
            raise AlreadyExistsError(f"Group <{entity.name}> already exists")
        self.groups[entity.name] = entity.copy(attributes={})
        return Uid(entity.name, entity.name)

    def update_group(self, entity):
        self._record("update_group", entity.copy())
        current = self._group(entity.name)
        self.groups[entity.name] = entity.copy(attributes=dict(current.attributes))

    def store_group_attributes(self, name, attributes):
        self._record("store_group_attributes", name, {k: set(v) for k, v in attributes.items()})
        self._store(self._group(name).attributes, attributes)

    def rename_group(self, name, new_name):
        self._record("rename_group", name, new_name)
        group = self.groups.pop(name)
        group.name = new_name
        self.groups[new_name] = group

    def delete_group(self, uid):
        self._record("delete_group", uid)
        self._group(uid.value)
        del self.groups[uid.value]

    def search_groups(self, start, size):
        self._record("search_groups", start, size)
        return [g.copy() for g in sorted(self.groups.values(), key=lambda g: g.name)][start:start + size]

    def add_group_to_groups(self, name, parents):
        self._record("add_group_to_groups", name, list(parents))
        self.parent_groups.setdefault(name, []).extend(parents)

    def remove_group_from_groups(self, name, parents):
        self._record("remove_group_from_groups", name, list(parents))
        current = self.parent_groups.get(name, [])
        for parent in parents:
            if parent in current:
                current.remove(parent)

    def get_parent_groups(self, name, start, size):
        self._record("get_parent_groups", name, start, size)
        return list(self.parent_groups.get(name, []))[start:start + size]


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────
def make_config(**overrides) -> ConnectorConfig:
    base = dict(
        base_url="https://crowd.example.com/crowd",
        application_name="idm",
        application_password="app-secret",
        default_query_page_size=50,
        user_attributes_schema=["tag$stringArray", "department$string"],
        group_attributes_schema=["owner$string", "labels$stringArray"],
    )
    base.update(overrides)
    return ConnectorConfig(**base)


@pytest.fixture()
def config():
    return make_config()


@pytest.fixture()
def fake_client():
    return FakeCrowdClient()


@pytest.fixture()
def connector(config, fake_client):
    """Initialized connector session over the in-memory Crowd."""
    session = CrowdConnector(config, fake_client)
    session.init()
    yield session
    session.dispose()


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires a running Crowd server)"
    )
