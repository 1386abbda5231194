"""
Database access

Builds the MongoDB client from the environment and exposes the `db` handle
plus a couple of small helpers used by the routes.
"""

import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "funfood_app")

# MongoClient connects lazily, so importing this module never blocks.
client = MongoClient(DATABASE_URL)
db = client[DATABASE_NAME]


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document and return its id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump(by_alias=True)
    else:
        doc = dict(data)
    doc.setdefault("createdAt", datetime.now(timezone.utc))
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    return list(db[collection_name].find(filter_dict or {}))


def ensure_indexes(target=None) -> None:
    """Create the indexes the application relies on (idempotent)."""
    target = db if target is None else target
    target["user"].create_index([("email", ASCENDING)], unique=True)
    target["product"].create_index([("inStock", ASCENDING)])
