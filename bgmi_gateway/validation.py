"""Request checks shared by the gateway operations.

Everything here is side-effect free apart from :func:`ensure_unique`, which
performs a single lookup against the store right before an insert.
"""
import hmac
import logging
import re
from typing import Any, Dict, Iterable, Optional

from .catalog import RESERVED_COLLECTIONS
from .errors import ConfigError, Conflict, Forbidden, ValidationError

logger = logging.getLogger(__name__)

MOBILE_RE = re.compile(r"\d{10}", re.ASCII)
COLLECTION_NAME_RE = re.compile(r"[A-Za-z][A-Za-z0-9_-]{0,63}")
INTEGER_RE = re.compile(r"-?\d+", re.ASCII)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def require_fields(data: Dict[str, Any], fields: Iterable[str]) -> None:
    """Raise :class:`ValidationError` naming every missing or blank field."""
    missing = [field for field in fields if is_blank(data.get(field))]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def require_strings(data: Dict[str, Any], fields: Iterable[str]) -> None:
    """Raise :class:`ValidationError` naming every field that is not text."""
    wrong = [field for field in fields
             if data.get(field) is not None and not isinstance(data[field], str)]
    if wrong:
        raise ValidationError(f"Fields must be text: {', '.join(wrong)}")


def clean(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def normalize_email(email: Any) -> str:
    return str(email).strip().lower()


def validate_mobile(mobile: Any) -> str:
    """Return the trimmed number, which must be exactly ten digits."""
    number = str(mobile).strip()
    if not MOBILE_RE.fullmatch(number):
        raise ValidationError("Mobile number must be exactly 10 digits.")
    return number


def check_password_confirmation(password: Any, confirm: Any) -> None:
    if password != confirm:
        raise ValidationError("Passwords do not match.")


def check_admin_code(submitted: Any, configured: Optional[str]) -> None:
    if not configured:
        logger.error("ADMIN_ID is not configured; refusing admin registration")
        raise ConfigError("Server misconfiguration: admin registration is disabled.")

    expected = str(configured).strip().encode("utf-8")
    given = str(submitted).strip().encode("utf-8")
    if not hmac.compare_digest(given, expected):
        logger.warning("Admin registration rejected: admin code mismatch")
        raise Forbidden("Invalid admin ID. Registration not allowed.")


def validate_collection_name(name: Any) -> str:
    if is_blank(name):
        raise ValidationError("Missing required field: collection")
    if not isinstance(name, str) or not COLLECTION_NAME_RE.fullmatch(name.strip()):
        raise ValidationError(f"Invalid collection name: {name!r}")
    name = name.strip()
    if name in RESERVED_COLLECTIONS:
        raise ValidationError(f"Collection '{name}' cannot be written through this endpoint.")
    return name


def normalize_documents(data: Any) -> list:
    """Accept one object or a non-empty list of objects, always return a list"""
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list) and data and all(isinstance(doc, dict) for doc in data):
        return list(data)
    raise ValidationError("Invalid request format. Expecting { collection, data } "
                          "where data is an object or a non-empty array of objects.")


def business_key_query(field: str, key: str) -> Dict[str, Any]:
    """Match ``key`` against ``field`` whether stored as text, padded text or a number"""
    key = key.strip()
    candidates = [key, re.compile(rf"^\s*{re.escape(key)}\s*$")]
    if INTEGER_RE.fullmatch(key):
        candidates.append(int(key))
    return {field: {"$in": candidates}}


async def ensure_unique(store, collection: str, query: Dict[str, Any], message: str) -> None:
    """Raise :class:`Conflict` if ``query`` already matches a document.

    Not atomic with the following insert: the unique indexes created by the
    store catch whatever slips between the two.
    """
    if await store.find_one(collection, query) is not None:
        raise Conflict(message)
