"""
Authentication Middleware
Centralized auth dependency for FastAPI routes
"""
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from pymongo.database import Database

from earnko.db.mongo import get_db


def _user_id_from_header(authorization: Optional[str]) -> Optional[str]:
    """Token format: "Bearer user:<user_id>"; None when absent or malformed."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1]
    if not token.startswith("user:"):
        return None
    return token.split(":", 1)[1] or None


def get_current_user(
    authorization: Optional[str] = Header(None),
    database: Database = Depends(get_db),
) -> Dict[str, Any]:
    """
    Extract and validate user from Authorization header.

    Returns:
        User document from MongoDB

    Raises:
        HTTPException: 401 if token is missing or invalid
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header"
        )

    user_id = _user_id_from_header(authorization)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format"
        )

    user = database["users"].find_one({"user_id": user_id})
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    return user


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
