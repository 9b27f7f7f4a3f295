"""External identity resolution for raw sync records."""

import logging
import math
from typing import Any, Dict, Optional

from crm_sync.services.checksum import compute_checksum

logger = logging.getLogger(__name__)

# Identity-like keys tried in order when a dataset names no external id field
DEFAULT_IDENTITY_FIELDS = ("sourceId", "id", "path", "number", "code", "document", "email", "name")


def _identity_value(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return str(int(value)) if value.is_integer() else str(value)
    return None


def resolve_external_id(
    record: Dict[str, Any],
    index: int,
    preferred_field: Optional[str] = None
) -> Optional[str]:
    """Derive the external key of a raw record.

    With ``preferred_field`` only that field is consulted and a missing or
    unusable value returns ``None``. Otherwise ``DEFAULT_IDENTITY_FIELDS`` are
    tried in order and, when none resolves, the record's own checksum is used
    as a pseudo-id. A checksum identity changes whenever the payload changes,
    so such a record reappears as a new row instead of an update.

    Args:
        record: Raw external record.
        index: Position of the record in its dataset, for diagnostics.
        preferred_field: Field that holds the identity, if the adapter knows it.

    Returns:
        The external id, or None when the preferred field has no usable value.
    """
    if preferred_field:
        return _identity_value(record.get(preferred_field))

    for key in DEFAULT_IDENTITY_FIELDS:
        resolved = _identity_value(record.get(key))
        if resolved is not None:
            return resolved

    fallback_id = compute_checksum(record)
    logger.warning(
        f"Missing external identity field for sync record, using checksum fallback "
        f"({fallback_id[:12]}) at index {index}"
    )
    return fallback_id
