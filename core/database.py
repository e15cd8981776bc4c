"""
core/database.py — MongoDB handle for reference-data hydration.

Owner: WS1 (Data & Retrieval)

Only ``core.data_loader`` talks to MongoDB; the engine itself runs on the
in-memory catalogs.
"""

from __future__ import annotations

import logging
from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database

from core.config import DB_NAME, MONGODB_URI

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


def get_client() -> MongoClient:
    """Return the cached MongoClient, connecting on first use."""
    global _client
    if _client is None:
        if not MONGODB_URI:
            raise RuntimeError("MONGODB_URI is not set; reference data cannot be hydrated from MongoDB")
        _client = MongoClient(MONGODB_URI, serverSelectionTimeoutMS=5000)
        logger.info("MongoDB client created (db=%s)", DB_NAME)
    return _client


def get_db(name: Optional[str] = None) -> Database:
    """Database handle; defaults to ``DB_NAME``."""
    return get_client()[name or DB_NAME]


def close() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
