"""
MongoDB connection management and document helpers.

The connection is built explicitly by `MongoConnection.connect()` and the
resulting `Database` handle is passed to whoever needs it; nothing here keeps
a process-wide connection.
"""
import re
import secrets
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

import structlog
from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from pymongo.monitoring import ServerHeartbeatListener

from config import Settings, get_settings
from errors import BootstrapError, ConflictError, TransientStoreError
from schemas import User

logger = structlog.get_logger(__name__)

LIFECYCLE_EVENTS = ("connected", "error", "disconnected")

# Fields covered by each collection's unique indexes
UNIQUE_FIELDS = {
    "user": ("username", "email"),
    "application": ("project_id", "hacker_id"),
}


def to_public(doc: Optional[dict]) -> Optional[dict]:
    """Return a plain copy of a stored document with `_id` exposed as `id`.

    ObjectId values (the id and any reference fields) become hex strings.
    """
    if not doc:
        return doc
    doc = {**doc}
    if "_id" in doc:
        doc["id"] = doc.pop("_id")
    for key, value in doc.items():
        if isinstance(value, list):
            doc[key] = [str(v) if isinstance(v, ObjectId) else v for v in value]
        elif isinstance(value, ObjectId):
            doc[key] = str(value)
    return doc


def create_document(db: Database, collection_name: str, data) -> dict:
    """Insert a model (or plain dict) and return the stored document."""
    data_dict = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    result = db[collection_name].insert_one(data_dict)
    data_dict["_id"] = result.inserted_id
    return data_dict


def _duplicate_fields(error: DuplicateKeyError, entity: str) -> List[str]:
    """Name the fields behind a duplicate key error.

    Servers that omit `keyValue` still name the index in the message
    (`... index: username_1 dup key ...`); failing both, every unique field
    of the collection is a candidate.
    """
    key_value = (error.details or {}).get("keyValue")
    if key_value:
        return list(key_value)
    match = re.search(r"index: (\S+)", str(error))
    if match:
        fields = re.findall(r"([A-Za-z0-9_.]+?)_-?1(?:_|$)", match.group(1))
        if fields:
            return fields
    return list(UNIQUE_FIELDS.get(entity, ()))


@contextmanager
def translate_errors(operation: str, entity: str) -> Iterator[None]:
    """Map driver exceptions onto the storage error taxonomy."""
    try:
        yield
    except DuplicateKeyError as e:
        raise ConflictError(entity, _duplicate_fields(e, entity)) from e
    except PyMongoError as e:
        raise TransientStoreError(operation, str(e)) from e


def ensure_indexes(db: Database) -> None:
    db["user"].create_index([("username", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["user"].create_index([("user_type", ASCENDING)])
    db["project"].create_index([("client_id", ASCENDING), ("created_at", DESCENDING)])
    db["project"].create_index([("status", ASCENDING)])
    db["review"].create_index([("hacker_id", ASCENDING)])
    db["application"].create_index(
        [("project_id", ASCENDING), ("hacker_id", ASCENDING)], unique=True
    )


def ensure_admin(db: Database, settings: Settings) -> Optional[dict]:
    """Create the bootstrap administrator unless an admin account exists.

    Returns the created document, or None when an admin was already present.
    Raises BootstrapError when the configured username or email is already
    taken by another account.
    Without a configured ADMIN_PASSWORD a random one is generated; it is
    never logged and must be reset through `update_user`.
    """
    if db["user"].find_one({"user_type": "admin"}):
        return None

    for setting, field, value in (
        ("ADMIN_USERNAME", "username", settings.admin_username),
        ("ADMIN_EMAIL", "email", settings.admin_email),
    ):
        if db["user"].find_one({field: value}, {"_id": 1}):
            logger.error("admin_bootstrap_blocked", setting=setting, value=value)
            raise BootstrapError(setting, value)

    password = settings.admin_password
    if not password:
        password = secrets.token_urlsafe(16)
        logger.warning("admin_password_generated", username=settings.admin_username)

    admin = User(
        username=settings.admin_username,
        email=settings.admin_email,
        password=password,
        full_name=settings.admin_full_name,
        user_type="admin",
    )
    with translate_errors("bootstrap_admin", "user"):
        doc = create_document(db, "user", admin)
    logger.info("admin_user_created", username=settings.admin_username)
    return doc


class HeartbeatMonitor(ServerHeartbeatListener):
    """Turns server heartbeats into lifecycle events.

    A failed heartbeat emits `error` then `disconnected`; the next successful
    one emits `connected`.
    """

    def __init__(self, connection: "MongoConnection"):
        self.connection = connection
        self.healthy = True

    def started(self, event) -> None:
        pass

    def succeeded(self, event) -> None:
        if not self.healthy:
            self.healthy = True
            self.connection.emit("connected")

    def failed(self, event) -> None:
        if self.healthy:
            self.healthy = False
            self.connection.emit("error", error=event.reply)
            self.connection.emit("disconnected")


class MongoConnection:
    """Owns the MongoClient and supervises its lifecycle.

    Usage:
        connection = MongoConnection(settings)
        connection.on("error", alert)
        db = connection.connect()
        storage = Storage(db)
    """

    def __init__(self, settings: Optional[Settings] = None, client: Optional[MongoClient] = None):
        self.settings = settings or get_settings()
        self.client = client
        self.db: Optional[Database] = None
        self._handlers: Dict[str, List[Callable]] = {event: [] for event in LIFECYCLE_EVENTS}

    def on(self, event: str, callback: Callable) -> None:
        if event not in self._handlers:
            raise ValueError(f"Unknown lifecycle event: {event}")
        self._handlers[event].append(callback)

    def emit(self, event: str, **info) -> None:
        if event == "error":
            logger.error("mongodb_connection_error", error=str(info.get("error")))
        else:
            logger.info(f"mongodb_{event}", database=self.settings.database_name)
        for callback in list(self._handlers[event]):
            callback(**info)

    def connect(self) -> Database:
        if self.client is None:
            self.client = MongoClient(
                self.settings.database_url,
                serverSelectionTimeoutMS=self.settings.server_selection_timeout_ms,
                socketTimeoutMS=self.settings.socket_timeout_ms,
                tz_aware=True,
                event_listeners=[HeartbeatMonitor(self)],
            )
        try:
            self.client.admin.command("ping")
        except PyMongoError as e:
            self.emit("error", error=e)
            raise TransientStoreError("connect", str(e)) from e

        db = self.client[self.settings.database_name]
        with translate_errors("bootstrap", "user"):
            ensure_indexes(db)
            ensure_admin(db, self.settings)
        self.db = db
        self.emit("connected")
        return db

    def close(self) -> None:
        if self.client is None:
            return
        self.client.close()
        self.client = None
        self.db = None
        self.emit("disconnected")
