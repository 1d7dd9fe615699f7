"""
MongoDB storage wiring for the admin-services API.

A single Storage instance owns the MongoClient for the whole process. It is
built once at startup, handed to the route handlers through a FastAPI
dependency and closed once at shutdown. Tests build one around a mongomock
client instead.
"""
import logging
from typing import Optional

from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

logger = logging.getLogger(__name__)

# Collections
COLL_EVENTS = "gallery_events"
COLL_CATEGORIES = "event_categories"
COLL_USERS = "users"
COLL_TEAM = "team_members"
COLL_MANUALS = "user_manuals"
COLL_INSIGHTS = "platform_insights"


class Storage:
    def __init__(self, client: MongoClient, db_name: str):
        self.client = client
        self.db: Database = client[db_name]

    @classmethod
    def from_settings(cls, settings) -> "Storage":
        if not settings.mongodb_uri:
            raise RuntimeError("MONGODB_URI is not set")
        client = MongoClient(settings.mongodb_uri, retryWrites=True, tz_aware=True)
        return cls(client, settings.db_name)

    @property
    def events(self) -> Collection:
        return self.db[COLL_EVENTS]

    @property
    def categories(self) -> Collection:
        return self.db[COLL_CATEGORIES]

    @property
    def users(self) -> Collection:
        return self.db[COLL_USERS]

    @property
    def team_members(self) -> Collection:
        return self.db[COLL_TEAM]

    @property
    def manuals(self) -> Collection:
        return self.db[COLL_MANUALS]

    @property
    def insights(self) -> Collection:
        return self.db[COLL_INSIGHTS]

    def ping(self) -> dict:
        return self.db.command("ping")

    def ensure_indexes(self):
        # Username uniqueness and the insights singleton both rely on these
        self.users.create_index([("username", ASCENDING)], unique=True)
        self.insights.create_index([("key", ASCENDING)], unique=True)

    def close(self):
        self.client.close()
        logger.info("Closed MongoDB connection to database %s", self.db.name)


# Mappers

def map_document(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    rest = {k: v for k, v in doc.items() if k != "_id"}
    return {"id": str(doc["_id"]) if doc.get("_id") is not None else None, **rest}


def map_user(doc: Optional[dict]) -> Optional[dict]:
    """Public view of a user record, without passwordHash."""
    if doc is None:
        return None
    return {
        "id": str(doc["_id"]) if doc.get("_id") is not None else None,
        "username": doc.get("username"),
        "createdAt": doc.get("createdAt"),
        "updatedAt": doc.get("updatedAt"),
    }


def map_category(doc: dict) -> dict:
    return {"value": doc.get("value"), "label": doc.get("label")}
