"""Tests for the declarative schema engine."""
import logging
from unittest.mock import MagicMock

import pytest

from crowd_connector.core.crowd.entities import UserEntity
from crowd_connector.core.exceptions import InvalidAttributeValueError
from crowd_connector.core.handlers import users as user_handlers
from crowd_connector.core.models import UserModel
from crowd_connector.core.objects import AttributeDelta
from crowd_connector.core.schema import (
    Flags,
    Kind,
    SchemaBuilder,
    Types,
    add_custom_attributes,
    parse_custom_attributes,
)


def _minimal_builder():
    sb = SchemaBuilder("user")
    sb.add_uid("key", Types.UUID, lambda e: e.key)
    sb.add_name("username", Types.STRING, lambda v, m: m.set_user_name(v), lambda e: e.name)
    return sb


@pytest.fixture()
def user_schema(config, fake_client):
    return user_handlers.create_schema(config, fake_client)


# ─────────────────────────────────────────────────────────────────────────────
# Builder invariants
# ─────────────────────────────────────────────────────────────────────────────

def test_build_requires_exactly_one_identifier():
    sb = SchemaBuilder("user")
    sb.add_name("username", Types.STRING, lambda v, m: None, lambda e: e.name)
    with pytest.raises(ValueError):
        sb.build()


def test_build_requires_exactly_one_name():
    sb = SchemaBuilder("user")
    sb.add_uid("key", Types.UUID, lambda e: e.key)
    with pytest.raises(ValueError):
        sb.build()


def test_duplicate_attribute_is_rejected():
    sb = _minimal_builder()
    sb.add("email", Types.STRING, lambda v, m: None, lambda e: e.email)
    with pytest.raises(ValueError):
        sb.add("email", Types.STRING, lambda v, m: None, lambda e: e.email)


def test_single_attribute_needs_setter_unless_read_only():
    sb = _minimal_builder()
    with pytest.raises(ValueError):
        sb.add("email", Types.STRING, None, lambda e: e.email)
    sb.add("created", Types.DATETIME, None, lambda e: None, Flags.NOT_CREATABLE, Flags.NOT_UPDATEABLE)


def test_single_attribute_needs_getter_unless_not_readable():
    sb = _minimal_builder()
    with pytest.raises(ValueError):
        sb.add("secret", Types.GUARDED_STRING, lambda v, m: None, None)
    sb.add("secret", Types.GUARDED_STRING, lambda v, m: None, None, Flags.NOT_READABLE)


def test_multi_valued_needs_all_closures():
    sb = _minimal_builder()
    with pytest.raises(ValueError):
        sb.add_as_multiple("groups", Types.STRING, lambda v, m: None, None, lambda e: [])


def test_identifier_is_never_creatable_or_updateable(user_schema):
    uid = user_schema.uid
    assert uid.kind is Kind.IDENTIFIER
    assert not uid.creatable
    assert not uid.updateable
    assert [d for d in user_schema if d.kind is Kind.IDENTIFIER] == [uid]


def test_resolve_accepts_special_names(user_schema):
    assert user_schema.resolve("__UID__") is user_schema.uid
    assert user_schema.resolve("__NAME__") is user_schema.name
    assert user_schema.resolve("username") is user_schema.name
    assert user_schema.resolve("missing") is None


def test_attribute_infos_reflect_flags(user_schema):
    infos = {i["nativeName"]: i for i in user_schema.attribute_infos()}

    assert infos["key"]["name"] == "__UID__"
    assert infos["username"]["name"] == "__NAME__"
    assert infos["username"]["required"] is True
    assert infos["__PASSWORD__"]["readable"] is False
    assert infos["__PASSWORD__"]["returnedByDefault"] is False
    assert infos["groups"]["multiValued"] is True
    assert infos["groups"]["returnedByDefault"] is False
    assert infos["created-date"]["creatable"] is False
    assert infos["created-date"]["updateable"] is False
    assert infos["attributes.tag"]["multiValued"] is True
    assert infos["attributes.department"]["multiValued"] is False


def test_returned_by_default_fields_use_remote_hints(user_schema):
    fields = user_schema.returned_by_default_fields
    assert fields["__ENABLE__"] == "active"
    assert "groups" not in fields
    assert "__PASSWORD__" not in fields
    assert fields["email"] == "email"


# ─────────────────────────────────────────────────────────────────────────────
# apply (create path)
# ─────────────────────────────────────────────────────────────────────────────

def test_apply_create_scenario(user_schema):
    """username + groups → rename pending, relations staged, no stored attributes."""
    model = user_schema.apply({"username": "alice", "groups": ["g1", "g2"]}, UserModel.create())

    assert model.display_name_changed
    assert model.new_name == "alice"
    assert model.pending_relation_add == ["g1", "g2"]
    assert model.pending_attributes == {}
    assert not model.attributes_changed


def test_apply_never_invokes_identifier_setter():
    getter = MagicMock(return_value="k")
    sb = SchemaBuilder("user")
    sb.add_uid("key", Types.UUID, getter)
    sb.add_name("username", Types.STRING, lambda v, m: m.set_user_name(v), lambda e: e.name)
    schema = sb.build()

    model = schema.apply({"key": "forced", "__UID__": "forced", "username": "bob"}, UserModel.create())
    assert model.to_entity().key is None
    getter.assert_not_called()


def test_apply_skips_not_creatable(user_schema):
    model = user_schema.apply({"username": "alice", "created-date": "2020-01-01"}, UserModel.create())
    assert model.to_entity().created_date is None


def test_apply_multi_valued_custom_attribute_uses_add(user_schema):
    model = user_schema.apply({"username": "alice", "attributes.tag": ["x", "y"]}, UserModel.create())
    assert model.pending_attributes == {"tag": {"x", "y"}}
    assert model.attributes_changed


def test_apply_unknown_attribute_raises(user_schema):
    with pytest.raises(InvalidAttributeValueError):
        user_schema.apply({"username": "alice", "nickname": "al"}, UserModel.create())


def test_apply_then_getter_recovers_single_value(user_schema):
    model = user_schema.apply({"username": "alice", "email": "alice@example.com"}, UserModel.create())
    descriptor = user_schema.resolve("email")
    assert descriptor.getter(model.to_entity()) == "alice@example.com"


# ─────────────────────────────────────────────────────────────────────────────
# apply_delta (update path)
# ─────────────────────────────────────────────────────────────────────────────

def test_apply_delta_tag_scenario(user_schema):
    current = UserEntity(name="alice", key="k1", attributes={"tag": ["a", "b"]})
    model = user_schema.apply_delta(
        [AttributeDelta("attributes.tag", values_to_add=["c"], values_to_remove=["a"])],
        UserModel.from_entity(current),
    )
    assert model.pending_attributes == {"tag": {"b", "c"}}
    assert model.attributes_changed


@pytest.mark.parametrize(
    "start, add, remove",
    [
        (set(), ["a"], []),
        ({"a", "b"}, ["b", "c"], ["c"]),
        ({"a"}, [], ["a"]),
        ({"x", "y"}, ["z"], ["q"]),
    ],
)
def test_apply_delta_multi_valued_diff_law(user_schema, start, add, remove):
    current = UserEntity(name="alice", key="k1", attributes={"tag": sorted(start)} if start else {})
    model = user_schema.apply_delta(
        [AttributeDelta("attributes.tag", values_to_add=add, values_to_remove=remove)],
        UserModel.from_entity(current),
    )
    assert model.pending_attributes["tag"] == (start | set(add)) - set(remove)


def test_apply_delta_removing_everything_stores_explicit_empty_set(user_schema):
    current = UserEntity(name="alice", key="k1", attributes={"tag": ["a"]})
    model = user_schema.apply_delta(
        [AttributeDelta("attributes.tag", values_to_remove=["a"])],
        UserModel.from_entity(current),
    )
    assert model.pending_attributes == {"tag": set()}


def test_apply_delta_clearing_law():
    setter = MagicMock()
    sb = _minimal_builder()
    sb.add("description", Types.STRING, setter, lambda e: None)
    schema = sb.build()

    model = UserModel.from_entity(UserEntity(name="alice", key="k1"))
    schema.apply_delta([AttributeDelta("username", values_to_add=["alice2"])], model)
    setter.assert_not_called()

    schema.apply_delta([AttributeDelta("description", values_to_add=[])], model)
    setter.assert_called_once_with(None, model)


def test_apply_delta_single_clear_flips_dirty_flag(user_schema):
    current = UserEntity(name="alice", key="k1", email="a@example.com")
    model = user_schema.apply_delta([AttributeDelta("email", values_to_add=[])], UserModel.from_entity(current))
    assert model.core_fields_changed
    assert model.to_entity().email is None

    untouched = user_schema.apply_delta([], UserModel.from_entity(current))
    assert not untouched.core_fields_changed
    assert untouched.to_entity().email == "a@example.com"


def test_apply_delta_single_takes_first_added_value(user_schema):
    current = UserEntity(name="alice", key="k1")
    model = user_schema.apply_delta(
        [AttributeDelta("first-name", values_to_add=["Alice", "Ignored"])],
        UserModel.from_entity(current),
    )
    assert model.to_entity().first_name == "Alice"


def test_apply_delta_single_custom_attribute_clear(user_schema):
    current = UserEntity(name="alice", key="k1", attributes={"department": ["eng"]})
    model = user_schema.apply_delta(
        [AttributeDelta("attributes.department", values_to_add=[])],
        UserModel.from_entity(current),
    )
    assert model.pending_attributes == {"department": set()}


def test_apply_delta_relations_are_copied_verbatim(user_schema):
    current = UserEntity(name="alice", key="k1")
    model = user_schema.apply_delta(
        [AttributeDelta("groups", values_to_add=["dev", "dev"], values_to_remove=["ops"])],
        UserModel.from_entity(current),
    )
    assert model.pending_relation_add == ["dev", "dev"]
    assert model.pending_relation_remove == ["ops"]
    assert model.relations_added and model.relations_removed


def test_apply_delta_skips_not_updateable(user_schema, caplog):
    current = UserEntity(name="alice", key="k1")
    with caplog.at_level(logging.DEBUG):
        model = user_schema.apply_delta(
            [AttributeDelta("updated-date", values_to_add=["x"]), AttributeDelta("__UID__", values_to_add=["y"])],
            UserModel.from_entity(current),
        )
    assert not model.core_fields_changed
    assert model.to_entity().key == "k1"


def test_apply_delta_unknown_attribute_raises(user_schema):
    with pytest.raises(InvalidAttributeValueError):
        user_schema.apply_delta([AttributeDelta("nope", values_to_add=["x"])],
                                UserModel.from_entity(UserEntity(name="alice")))


@pytest.mark.parametrize("name", ["email", "groups"])
def test_apply_delta_without_values_raises(user_schema, name):
    model = UserModel.from_entity(UserEntity(name="alice", email="a@example.com"))
    with pytest.raises(InvalidAttributeValueError):
        user_schema.apply_delta([AttributeDelta(name)], model)
    assert not model.core_fields_changed
    assert not model.relations_added


# ─────────────────────────────────────────────────────────────────────────────
# Custom attribute tokens
# ─────────────────────────────────────────────────────────────────────────────

def test_parse_custom_attributes_types_are_case_insensitive():
    parsed = parse_custom_attributes(["a$string", "b$STRINGARRAY", "c$StringArray"])
    assert [(c.name, c.multi_valued) for c in parsed] == [("a", False), ("b", True), ("c", True)]
    assert parsed[0].schema_name == "attributes.a"


def test_parse_custom_attributes_drops_malformed_tokens(caplog):
    with caplog.at_level(logging.WARNING):
        parsed = parse_custom_attributes(["noType", "a$b$string", "x$integer", "$string", "ok$string"])
    assert [c.name for c in parsed] == ["ok"]
    assert "Ignoring" in caplog.text


def test_add_custom_attributes_registers_descriptors():
    sb = add_custom_attributes(_minimal_builder(), ["nick$string", "tags$stringArray", "bad"])
    schema = sb.build()

    assert schema.resolve("attributes.nick").kind is Kind.SINGLE
    assert schema.resolve("attributes.tags").kind is Kind.MULTI_VALUED
    assert len(schema) == 4

    entity = UserEntity(name="alice", attributes={"nick": ["al"], "tags": ["a", "b"]})
    assert schema.resolve("attributes.nick").getter(entity) == "al"
    assert schema.resolve("attributes.tags").getter(entity) == ["a", "b"]
    assert schema.resolve("attributes.tags").getter(UserEntity(name="bob")) == []
