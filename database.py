"""
Database handle

A single MongoDB client opened at startup and closed at shutdown. The handle
is passed to every store instead of living in a module global.

Collections are named after the lowercase model name:
- User -> "user"
- Product -> "product"
- Order -> "order"
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection

logger = logging.getLogger(__name__)


class DatabaseNotOpen(RuntimeError):
    pass


class Database:
    def __init__(self, url: str, name: str, client_factory: Callable[..., Any] = MongoClient):
        self.url = url
        self.name = name
        self._client_factory = client_factory
        self.client = None
        self.db = None

    @property
    def is_open(self) -> bool:
        return self.db is not None

    def open(self) -> "Database":
        if self.is_open:
            return self
        self.client = self._client_factory(self.url, tz_aware=True, serverSelectionTimeoutMS=5000)
        self.db = self.client[self.name]
        self.ensure_indexes()
        logger.info("Connected to MongoDB database %r", self.name)
        return self

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("Closed MongoDB connection")
        self.client = None
        self.db = None

    def ensure_indexes(self) -> None:
        # Registration checks then inserts; the unique index closes the race.
        self["user"].create_index([("email", ASCENDING)], unique=True)
        self["order"].create_index([("created_at", DESCENDING)])

    def __getitem__(self, collection_name: str) -> Collection:
        if self.db is None:
            raise DatabaseNotOpen("Database is not open")
        return self.db[collection_name]

    def create_document(self, collection_name: str, data: Union[BaseModel, dict]) -> str:
        if isinstance(data, BaseModel):
            data_dict = data.model_dump()
        else:
            data_dict = dict(data)
        now = datetime.now(timezone.utc)
        data_dict.setdefault("created_at", now)
        data_dict.setdefault("updated_at", now)
        result = self[collection_name].insert_one(data_dict)
        return str(result.inserted_id)

    def get_documents(
        self,
        collection_name: str,
        filter_dict: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        sort: Optional[List[tuple]] = None,
    ) -> List[dict]:
        cursor = self[collection_name].find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)


def serialize(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d
