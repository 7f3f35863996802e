"""Data-store helpers: typed value conversion, field upserts, schema
initialisation and turn-to-turn inheritance.

Values are stored as strings on every DataStoreField. convert_value() turns
them into Python values of the declared type, returning None when the string
cannot represent that type; callers skip such updates rather than storing
garbage.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any

from tavern_play.models import (
    DataStoreField,
    DataStoreFieldType,
    DataStoreSchemaField,
    Session,
)
from tavern_play.prompts import PromptError, render_prompt
from tavern_play.storage import NotFoundError, Storage

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")

_TYPE_DEFAULTS: dict[str, str] = {
    "string": "",
    "number": "0",
    "integer": "0",
    "boolean": "false",
}


def convert_value(value: str, type: DataStoreFieldType) -> str | float | int | bool | None:
    """Convert a string-encoded value to its declared type, or None if invalid."""
    if value in ("", "undefined", "null"):
        return None
    if type == "number":
        try:
            num = float(value)
        except ValueError:
            return None
        return None if math.isnan(num) else num
    if type == "integer":
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    if type == "boolean":
        return value.strip().lower() in ("true", "1", "yes")
    return value


def encode_value(value: Any) -> str:
    """Inverse of convert_value: the string form stored on a field."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def default_value(type: DataStoreFieldType) -> str:
    return _TYPE_DEFAULTS.get(type, "")


def upsert_field(
    fields: list[DataStoreField], name: str, type: DataStoreFieldType, value: str
) -> None:
    """Replace the field called `name` in place, or append it."""
    for i, f in enumerate(fields):
        if f.name == name:
            fields[i] = DataStoreField(name=name, type=type, value=value)
            return
    fields.append(DataStoreField(name=name, type=type, value=value))


def as_mapping(fields: list[DataStoreField]) -> dict[str, Any]:
    """Expose fields to templates as {name: typed value}."""
    return {f.name: convert_value(f.value, f.type) for f in fields}


def initialize_from_schema(
    fields: list[DataStoreField],
    schema: list[DataStoreSchemaField],
    context: dict[str, Any],
) -> None:
    """Append every schema field that `fields` does not have yet.

    The initial value is a Handlebars template rendered against `context`;
    render or conversion failures fall back to the type's default.
    """
    existing = {f.name for f in fields}
    for schema_field in schema:
        if schema_field.name in existing:
            continue
        try:
            rendered = render_prompt(schema_field.initial_value, context)
        except PromptError as e:
            logger.error(
                "Failed to initialize dataStore field %r: %s", schema_field.name, e
            )
            rendered = ""
        converted = convert_value(rendered, schema_field.type)
        value = (
            encode_value(converted) if converted is not None
            else default_value(schema_field.type)
        )
        fields.append(DataStoreField(name=schema_field.name, type=schema_field.type, value=value))
        existing.add(schema_field.name)


# ---------------------------------------------------------------------------
# Inheritance
# ---------------------------------------------------------------------------

def inherit_data_store(
    storage: Storage, session: Session, regenerate_turn_id: str | None = None
) -> list[DataStoreField]:
    """Return a deep copy of the data store a new generation starts from.

    Scans the turns before the target, most recent first, and takes the
    first non-empty data store. For a regeneration the target turn itself
    and everything after it are excluded; for a new message every existing
    turn precedes the target. A turn that cannot be read is logged and
    skipped.

    Raises NotFoundError when the regeneration target is not part of the
    session.
    """
    turn_ids = session.turn_ids
    if regenerate_turn_id is not None:
        if regenerate_turn_id not in turn_ids:
            raise NotFoundError("turn", regenerate_turn_id)
        turn_ids = turn_ids[: turn_ids.index(regenerate_turn_id)]

    for turn_id in reversed(turn_ids):
        try:
            turn = storage.get_turn(turn_id)
        except (NotFoundError, OSError, ValueError) as e:
            logger.warning("Failed to read turn %s for dataStore inheritance: %s", turn_id, e)
            continue
        if turn.data_store:
            inherited = [f.model_copy(deep=True) for f in turn.data_store]
            logger.info(
                "Inherited dataStore from turn %s (%d fields)", turn_id, len(inherited)
            )
            return inherited
    return []
