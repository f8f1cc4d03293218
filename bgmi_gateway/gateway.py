import hmac
import logging
import time
from typing import Any, Dict, List

from . import validation
from .catalog import (
    ADMINS,
    BUSINESS_KEYS,
    HIDDEN_FIELDS,
    JOIN_MATCHES,
    READABLE_COLLECTIONS,
    event_for,
)
from .config import Settings
from .errors import NotFound, Unauthorized, Unavailable, ValidationError
from .notifier import EventNotifier
from .utils import utc_now

logger = logging.getLogger(__name__)

ADMIN_FIELDS = ["name", "email", "password", "adminId"]
PLAYER_SLOTS = ["firstPlayer", "secondPlayer", "thirdPlayer", "fourthPlayer"]
JOIN_FIELDS = ["tournamentName", *PLAYER_SLOTS, "playerEmail", "playerMobileNumber"]
# The mobile number may arrive as a JSON number.
JOIN_TEXT_FIELDS = [field for field in JOIN_FIELDS if field != "playerMobileNumber"]

# Older clients spell the fourth slot this way.
LEGACY_FIELD_NAMES = {"forthPlayer": "fourthPlayer"}


def admin_summary(admin: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": admin.get("name"),
        "email": admin.get("email"),
        "adminId": admin.get("adminId"),
    }


def new_admin_id() -> str:
    return f"admin_{int(time.time() * 1000)}"


class Gateway:
    """Owns the store, the notifier and the settings for one running server.

    Every write goes validate, dedup, persist, then broadcast. Reads only
    check the collection allow-list.
    """

    def __init__(self, settings: Settings, store, notifier: EventNotifier):
        self.settings = settings
        self.store = store
        self.notifier = notifier

    @property
    def ready(self) -> bool:
        return bool(self.store.ready)

    def _require_store(self) -> None:
        if not self.store.ready:
            raise Unavailable()

    # ========================================================================
    # Admin accounts
    # ========================================================================

    async def register_admin(self, data: Dict[str, Any]) -> Dict[str, Any]:
        validation.require_fields(data, ADMIN_FIELDS)
        validation.require_strings(data, ADMIN_FIELDS)
        validation.check_admin_code(data["adminId"], self.settings.admin_id)
        self._require_store()

        email = validation.normalize_email(data["email"])
        await validation.ensure_unique(
            self.store, ADMINS, {"email": email},
            "Admin already exists. Please log in.",
        )

        now = utc_now()
        admin = {
            "name": validation.clean(data["name"]),
            "email": email,
            "password": data["password"],
            "isVerified": True,
            "adminId": new_admin_id(),
            "createdAt": now,
            "updatedAt": now,
        }
        await self.store.insert_one(ADMINS, admin)
        logger.info(f"Admin registered: {email}")
        return admin_summary(admin)

    async def login_admin(self, data: Dict[str, Any]) -> Dict[str, Any]:
        validation.require_fields(data, ["email", "password"])
        validation.require_strings(data, ["email", "password"])
        self._require_store()

        email = validation.normalize_email(data["email"])
        admin = await self.store.find_one(ADMINS, {"email": email})
        if not admin:
            raise NotFound("Admin not found. Please sign up.")

        stored = str(admin.get("password", "")).encode("utf-8")
        given = str(data["password"]).encode("utf-8")
        if not hmac.compare_digest(stored, given):
            logger.warning(f"Failed admin login for {email}")
            raise Unauthorized("Invalid credentials.")

        await self.store.update_one(ADMINS, {"email": email},
                                    {"isVerified": True, "updatedAt": utc_now()})
        logger.info(f"Admin logged in: {email}")
        return admin_summary(admin)

    async def logout_admin(self, data: Dict[str, Any]) -> None:
        validation.require_fields(data, ["email"])
        validation.require_strings(data, ["email"])
        self._require_store()

        email = validation.normalize_email(data["email"])
        matched = await self.store.update_one(ADMINS, {"email": email},
                                              {"isVerified": False, "updatedAt": utc_now()})
        if not matched:
            raise NotFound("Admin not found.")
        logger.info(f"Admin logged out: {email}")

    # ========================================================================
    # Match registration
    # ========================================================================

    async def join_match(self, data: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(data)
        for legacy, canonical in LEGACY_FIELD_NAMES.items():
            if validation.is_blank(data.get(canonical)) and legacy in data:
                data[canonical] = data.pop(legacy)

        validation.require_fields(data, JOIN_FIELDS)
        validation.require_strings(data, JOIN_TEXT_FIELDS)
        mobile = validation.validate_mobile(data["playerMobileNumber"])

        password = data.get("playerPassword")
        confirm = data.get("playerConfirmPassword")
        if password is not None or confirm is not None:
            validation.require_fields(data, ["playerPassword", "playerConfirmPassword"])
            validation.require_strings(data, ["playerPassword", "playerConfirmPassword"])
            validation.check_password_confirmation(password, confirm)

        self._require_store()

        now = utc_now()
        record = {field: validation.clean(data[field]) for field in JOIN_FIELDS}
        record["playerEmail"] = validation.normalize_email(data["playerEmail"])
        record["playerMobileNumber"] = mobile
        record["createdAt"] = now
        record["updatedAt"] = now

        await validation.ensure_unique(
            self.store, JOIN_MATCHES,
            {"playerEmail": record["playerEmail"], "tournamentName": record["tournamentName"]},
            "You have already joined this tournament.",
        )
        record["_id"] = await self.store.insert_one(JOIN_MATCHES, record)
        logger.info(f"{record['playerEmail']} joined {record['tournamentName']}")

        self.notifier.notify(event_for(JOIN_MATCHES), record)
        return record

    # ========================================================================
    # Generic collections
    # ========================================================================

    async def write_collection(self, collection: Any, data: Any) -> List[Dict[str, Any]]:
        collection = validation.validate_collection_name(collection)
        documents = validation.normalize_documents(data)
        self._require_store()

        await self.store.insert_many(collection, documents)
        logger.info(f"Saved {len(documents)} documents into {collection}")

        event = event_for(collection)
        if event:
            self.notifier.notify(event, documents)
        else:
            logger.debug(f"No event mapped for {collection}; nothing broadcast")
        return documents

    def _readable(self, collection: str) -> str:
        if collection not in READABLE_COLLECTIONS:
            raise ValidationError(f"Unknown collection: {collection}")
        return collection

    async def read_collection(self, collection: str) -> List[Dict[str, Any]]:
        collection = self._readable(collection)
        self._require_store()
        return await self.store.find_all(collection, exclude=HIDDEN_FIELDS.get(collection, ()))

    async def read_one(self, collection: str, key: str) -> Dict[str, Any]:
        collection = self._readable(collection)
        field = BUSINESS_KEYS.get(collection)
        if field is None:
            raise ValidationError(f"{collection} does not support lookup by key")
        self._require_store()

        document = await self.store.find_one(collection, validation.business_key_query(field, key))
        if document is None:
            raise NotFound(f"No {collection} found for {field} '{key}'.")
        return document
