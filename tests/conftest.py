import copy
import re
from collections import defaultdict

import pytest
from bson import ObjectId

from bgmi_gateway.app import create_app
from bgmi_gateway.config import Settings
from bgmi_gateway.errors import Conflict, InternalError
from bgmi_gateway.gateway import Gateway
from bgmi_gateway.notifier import EventNotifier

ADMIN_CODE = "bgmi-secret"

UNIQUE_KEYS = {
    "admins": ("email",),
    "joinmatches": ("playerEmail", "tournamentName"),
}


def _equals(stored, wanted):
    if isinstance(wanted, re.Pattern):
        return isinstance(stored, str) and wanted.search(stored) is not None
    return stored == wanted


def _matches(doc, query):
    for field, wanted in query.items():
        candidates = wanted["$in"] if isinstance(wanted, dict) and "$in" in wanted else [wanted]
        if not any(_equals(doc.get(field), candidate) for candidate in candidates):
            return False
    return True


class MemoryStore:
    """In-memory stand-in for :class:`bgmi_gateway.store.MongoStore`.

    Honours the same unique keys as the Mongo indexes, so tests can also
    exercise the storage-level conflict path.
    """

    def __init__(self, ready=True):
        self.ready = ready
        self.collections = defaultdict(list)
        self.closed = False
        self.fail_inserts = False

    async def connect_forever(self, retry_delay):
        pass

    def close(self):
        self.closed = True

    def _check_unique(self, collection, doc):
        fields = UNIQUE_KEYS.get(collection)
        if not fields:
            return
        key = {field: doc.get(field) for field in fields}
        if any(_matches(existing, key) for existing in self.collections[collection]):
            raise Conflict("A matching record already exists.")

    def _insert(self, collection, document):
        doc = copy.deepcopy(document)
        doc.setdefault("_id", ObjectId())
        self._check_unique(collection, doc)
        self.collections[collection].append(doc)
        return str(doc["_id"])

    async def insert_many(self, collection, documents):
        if self.fail_inserts:
            raise InternalError("Failed to save data.")
        return [self._insert(collection, doc) for doc in documents]

    async def insert_one(self, collection, document):
        return self._insert(collection, document)

    async def find_all(self, collection, exclude=()):
        return [
            {k: v for k, v in copy.deepcopy(doc).items() if k not in exclude}
            for doc in self.collections[collection]
        ]

    async def find_one(self, collection, query):
        for doc in self.collections[collection]:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def update_one(self, collection, query, changes):
        for doc in self.collections[collection]:
            if _matches(doc, query):
                doc.update(changes)
                return True
        return False


@pytest.fixture
def settings():
    return Settings(admin_id=ADMIN_CODE, sse_keepalive=0.5, sse_queue_size=10)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def notifier():
    return EventNotifier(queue_size=10)


@pytest.fixture
def gateway(settings, store, notifier):
    return Gateway(settings, store, notifier)


@pytest.fixture
def app(settings, store, notifier):
    return create_app(settings, store=store, notifier=notifier)


@pytest.fixture
async def client(aiohttp_client, app):
    return await aiohttp_client(app)


@pytest.fixture
def join_payload():
    return {
        "tournamentName": "deadzone",
        "firstPlayer": "A",
        "secondPlayer": "B",
        "thirdPlayer": "C",
        "fourthPlayer": "D",
        "playerEmail": "X@Y.com",
        "playerMobileNumber": "9876543210",
    }
