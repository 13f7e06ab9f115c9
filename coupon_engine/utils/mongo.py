from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId

"""Helpers shared by the crud modules: timestamps and id coercion"""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def stamp_create(doc: dict) -> dict:
    now = utcnow()
    doc["createdAt"] = now
    doc["updatedAt"] = now
    return doc


def stamp_update(doc: dict) -> dict:
    doc["updatedAt"] = utcnow()
    return doc


def to_oid(v: Any) -> Optional[ObjectId]:
    """Coerce a value to ObjectId, or None when it is not a valid id."""
    if isinstance(v, ObjectId):
        return v
    try:
        return ObjectId(str(v))
    except Exception:
        return None


def maybe_oid(v: Any) -> Any:
    """Coerce to ObjectId when possible, otherwise leave the value as-is."""
    oid = to_oid(v)
    return oid if oid is not None else v
