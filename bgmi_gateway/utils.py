import json
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def serialize_document(obj: Any) -> Any:
    """Convert ObjectIds and datetimes so the value can be JSON-encoded"""
    if isinstance(obj, ObjectId):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, dict):
        return {key: serialize_document(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [serialize_document(item) for item in obj]
    elif isinstance(obj, tuple):
        return [serialize_document(item) for item in obj]
    else:
        return obj


def json_dumps(obj: Any) -> str:
    return json.dumps(serialize_document(obj), default=str, ensure_ascii=False)
