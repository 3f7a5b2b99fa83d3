"""
MongoDB Helper Utilities
Functions to clean MongoDB documents for JSON serialization
"""
from datetime import datetime
from typing import Any

from bson import ObjectId


def sanitize_mongo_doc(doc: Any) -> Any:
    """
    Recursively remove MongoDB-specific fields (_id, ObjectId) from documents
    to make them JSON serializable.

    Args:
        doc: MongoDB document, list, dict, or primitive value

    Returns:
        Sanitized version safe for JSON serialization
    """
    if doc is None:
        return None

    if isinstance(doc, ObjectId):
        return str(doc)

    if isinstance(doc, datetime):
        return doc.isoformat()

    # Handle dictionaries (MongoDB documents)
    if isinstance(doc, dict):
        return {key: sanitize_mongo_doc(value) for key, value in doc.items() if key != "_id"}

    if isinstance(doc, (list, tuple)):
        return [sanitize_mongo_doc(item) for item in doc]

    # Primitives pass through
    return doc
