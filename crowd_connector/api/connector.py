"""Connector operations over HTTP.

The host drives the connector with JSON requests; every operation is
delegated to the ``CrowdConnector`` stored on the app and serialized by the
app-wide connector lock.

Routes:
    GET    /connector/schema
    POST   /connector/test
    POST   /connector/<object_class>               {"attributes": {...}}
    GET    /connector/<object_class>?uid=|name=&pageSize=&pageOffset=...
    GET    /connector/<object_class>/<uid>
    PATCH  /connector/<object_class>/<uid>         {"modifications": [...]}
    DELETE /connector/<object_class>/<uid>
"""
from __future__ import annotations
import logging
from typing import Optional

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from crowd_connector.core.exceptions import InvalidAttributeValueError, UnknownUidError
from crowd_connector.core.filters import CrowdFilter, translate
from crowd_connector.core.objects import NAME_NAME, UID_NAME, AttributeDelta, SearchOptions, Uid

bp = Blueprint("connector", __name__, url_prefix="/connector")

logger = logging.getLogger(__name__)

JSON_MAX_SIZE_BYTES = 65536  # 64 KB


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _connector():
    return current_app.config["CONNECTOR"]


def _lock():
    return current_app.config["CONNECTOR_LOCK"]


def _json_body() -> dict:
    """Parse the request body as a JSON object.

    Raises:
        InvalidAttributeValueError: If the body is missing, too large or not an object
    """
    if request.content_length and request.content_length > JSON_MAX_SIZE_BYTES:
        raise InvalidAttributeValueError("Request payload too large")
    try:
        payload = request.get_json(force=True)
    except BadRequest:
        raise InvalidAttributeValueError("Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise InvalidAttributeValueError("Request body must be a JSON object")
    return payload


def _int_arg(name: str) -> Optional[int]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        raise InvalidAttributeValueError(f"Query parameter '{name}' must be an integer")


def _bool_arg(name: str) -> bool:
    return request.args.get(name, "false").strip().lower() in ("true", "1", "yes")


def _search_query() -> Optional[CrowdFilter]:
    """Filter from ``uid`` or ``name``; neither means a full listing.

    Raises:
        InvalidAttributeValueError: If both are given
    """
    uid = request.args.get("uid")
    name = request.args.get("name")
    if uid and name:
        raise InvalidAttributeValueError("Search by either 'uid' or 'name', not both")
    if uid:
        return translate({"attribute": UID_NAME, "value": uid})
    if name:
        return translate({"attribute": NAME_NAME, "value": name})
    return None


def _search_options() -> SearchOptions:
    attributes_to_get = [
        a.strip() for a in request.args.get("attributesToGet", "").split(",") if a.strip()
    ]
    return SearchOptions(
        page_size=_int_arg("pageSize"),
        page_offset=_int_arg("pageOffset"),
        attributes_to_get=attributes_to_get or None,
        return_default_attributes=_bool_arg("returnDefaultAttributes"),
        allow_partial_attribute_values=_bool_arg("allowPartialAttributeValues"),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/schema", methods=["GET"])
def get_schema():
    """Object classes and their attribute metadata."""
    with _lock():
        return jsonify(_connector().schema()), 200


@bp.route("/test", methods=["POST"])
def test_connection():
    with _lock():
        _connector().test()
    return jsonify({"status": "ok"}), 200


@bp.route("/<object_class>", methods=["POST"])
def create_object(object_class: str):
    """Create an object from ``{"attributes": {...}}``."""
    payload = _json_body()
    attributes = payload.get("attributes")
    if not isinstance(attributes, dict):
        raise InvalidAttributeValueError("'attributes' must be a JSON object")

    with _lock():
        uid = _connector().create(object_class, attributes)

    current_app.logger.info(f"Created {object_class} uid={uid.value}")
    return jsonify({"uid": uid.value, "name": uid.name_hint}), 201


@bp.route("/<object_class>/<path:uid>", methods=["PATCH"])
def update_object(object_class: str, uid: str):
    """Apply ``{"modifications": [{"name", "valuesToAdd", "valuesToRemove"}]}``.

    Each side must be a JSON array and at least one side must be present;
    ``"valuesToAdd": []`` clears a single-valued attribute.
    """
    payload = _json_body()
    modifications = payload.get("modifications")
    if not isinstance(modifications, list):
        raise InvalidAttributeValueError("'modifications' must be a JSON array")
    try:
        deltas = [AttributeDelta.from_dict(m) for m in modifications]
    except (KeyError, TypeError, AttributeError):
        raise InvalidAttributeValueError("Each modification needs a 'name'")

    with _lock():
        _connector().update_delta(object_class, Uid(uid), deltas)
    return "", 204


@bp.route("/<object_class>/<path:uid>", methods=["DELETE"])
def delete_object(object_class: str, uid: str):
    with _lock():
        _connector().delete(object_class, Uid(uid))
    return "", 204


@bp.route("/<object_class>/<path:uid>", methods=["GET"])
def get_object(object_class: str, uid: str):
    with _lock():
        obj = _connector().get(object_class, Uid(uid), _search_options())
    if obj is None:
        raise UnknownUidError(f"{object_class} '{uid}' not found")
    return jsonify(obj.to_dict()), 200


@bp.route("/<object_class>", methods=["GET"])
def search_objects(object_class: str):
    """List objects, or look one up by ``uid`` or ``name``."""
    options = _search_options()
    query = _search_query()

    resources = []
    completion = {}

    def _collect(obj) -> bool:
        resources.append(obj.to_dict())
        return True

    def _on_complete(result) -> None:
        completion["remainingPagedResults"] = result.remaining_paged_results

    with _lock():
        _connector().search(object_class, query, _collect, options, _on_complete)

    body = {"resources": resources}
    body.update(completion)
    return jsonify(body), 200
