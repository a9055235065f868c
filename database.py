"""
Database Handle

MongoDB access for the order, payment and request workflows.
A Database is constructed explicitly, opened at process start and closed
at shutdown; every store receives it rather than reaching for a module
global. All driver calls are bounded by ``timeout_ms`` and driver
failures surface as ``Unavailable``.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Union

import structlog
from bson import Decimal128, ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError
from pydantic import BaseModel

from errors import NotFound, Unavailable

logger = structlog.get_logger(__name__)

ORDERS = "orders"
PAYMENTS = "payments"
REQUESTS = "requests"
USERS = "users"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate driver failures into Unavailable. Duplicate keys pass through."""
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        logger.error("store_operation_failed", operation=operation, error=str(e)[:200])
        raise Unavailable(f"Document store unavailable during {operation}") from e


def parse_object_id(value: Union[str, ObjectId], entity: str = "Document") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFound(f"{entity} not found", id=value)


class Database:
    def __init__(
        self,
        name: str,
        url: Optional[str] = None,
        timeout_ms: int = 5000,
        client: Optional[Any] = None,
    ):
        self.name = name
        self.url = url
        self.timeout_ms = timeout_ms
        self._client = client
        self._db = None

    def open(self) -> "Database":
        if self._client is None:
            if not self.url:
                raise Unavailable("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
            self._client = MongoClient(
                self.url,
                tz_aware=True,
                timeoutMS=self.timeout_ms,
                serverSelectionTimeoutMS=self.timeout_ms,
                connectTimeoutMS=self.timeout_ms,
            )
        self._db = self._client[self.name]
        self.ensure_indexes()
        logger.info("database_opened", database=self.name)
        return self

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._db = None
        logger.info("database_closed", database=self.name)

    @property
    def db(self):
        if self._db is None:
            raise Unavailable("Database not available. Call open() before use.")
        return self._db

    def collection(self, name: str):
        return self.db[name]

    def ensure_indexes(self) -> None:
        with store_errors("ensure_indexes"):
            # one ledger entry per provider transaction
            self.db[PAYMENTS].create_index([("transaction_id", ASCENDING)], unique=True)
            # chef identifiers newly drawn by approvals
            self.db[REQUESTS].create_index([("issued_chef_id", ASCENDING)], unique=True, sparse=True)
            self.db[ORDERS].create_index([("user_email", ASCENDING)])
            self.db[ORDERS].create_index([("chef_id", ASCENDING)])
            self.db[USERS].create_index([("email", ASCENDING)])

    def ping(self) -> bool:
        try:
            self._client.admin.command("ping")
            return True
        except (PyMongoError, AttributeError):
            return False

    def list_collection_names(self) -> List[str]:
        with store_errors("list_collection_names"):
            return self.db.list_collection_names()

    # CRUD helpers

    def create_document(self, collection_name: str, data: Union[BaseModel, dict]) -> str:
        payload = to_document(data)
        payload.pop("_id", None)
        now = utcnow()
        payload["created_at"] = now
        payload["updated_at"] = now
        with store_errors(f"insert {collection_name}"):
            result = self.db[collection_name].insert_one(payload)
        return str(result.inserted_id)

    def get_documents(
        self,
        collection_name: str,
        filter_dict: Optional[dict] = None,
        limit: Optional[int] = None,
        sort: Optional[list] = None,
    ) -> List[dict]:
        with store_errors(f"find {collection_name}"):
            cursor = self.db[collection_name].find(filter_dict or {})
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(int(limit))
            return [serialize_doc(doc) for doc in cursor]

    def get_document(self, collection_name: str, filter_dict: dict) -> Optional[dict]:
        with store_errors(f"find_one {collection_name}"):
            doc = self.db[collection_name].find_one(filter_dict)
        return serialize_doc(doc)

    def get_document_by_id(self, collection_name: str, _id: Union[str, ObjectId]) -> Optional[dict]:
        try:
            oid = parse_object_id(_id)
        except NotFound:
            return None
        return self.get_document(collection_name, {"_id": oid})


# Utility

def _to_bson(value: Any) -> Any:
    if isinstance(value, Decimal):
        return Decimal128(str(value))
    if isinstance(value, dict):
        return {k: _to_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_bson(v) for v in value]
    return value


def _from_bson(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return {k: _from_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_bson(v) for v in value]
    return value


def to_document(data: Union[BaseModel, Dict[str, Any]]) -> dict:
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_none=True, by_alias=True)
    return _to_bson(dict(data))


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    return _from_bson(dict(doc))
