"""Stable payload serialization and checksums."""

import hashlib
import json
from datetime import date, datetime
from typing import Any, Dict

JSON_SCALARS = (str, int, float, bool, type(None))


def stable_serialize(value: Any) -> str:
    """Serialize a value so that equal content always yields equal text.

    Mapping keys are sorted, sequences keep their order, dates are encoded as
    ISO-8601 strings and scalars as JSON literals. Sets have no order of their
    own, so their serialized members are sorted.
    """
    if isinstance(value, (datetime, date)):
        return json.dumps(value.isoformat())
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(stable_serialize(item) for item in value) + "]"
    if isinstance(value, (set, frozenset)):
        return "[" + ",".join(sorted(stable_serialize(item) for item in value)) + "]"
    if isinstance(value, dict):
        keys = sorted(value.keys(), key=str)
        return "{" + ",".join(
            f"{json.dumps(str(key))}:{stable_serialize(value[key])}" for key in keys
        ) + "}"
    return json.dumps(value, default=str)


def compute_checksum(payload: Dict[str, Any]) -> str:
    """Return the SHA-256 hex digest of the stable serialization of ``payload``."""
    return hashlib.sha256(stable_serialize(payload).encode("utf-8")).hexdigest()


def to_json_safe(value: Any) -> Any:
    """Copy a payload into JSON-column friendly types.

    Dates become ISO strings, sets become lists in serialized order and any
    other non-JSON value (``Decimal``, ``UUID``...) becomes ``str(value)``,
    matching how ``stable_serialize`` encodes it.
    """
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return [to_json_safe(item) for item in sorted(value, key=stable_serialize)]
    if isinstance(value, dict):
        return {str(key): to_json_safe(item) for key, item in value.items()}
    if isinstance(value, JSON_SCALARS):
        return value
    return str(value)
