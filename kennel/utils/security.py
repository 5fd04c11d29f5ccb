"""
Admin gate

Stands in for the external authorization middleware: admin endpoints
require the shared ADMIN_TOKEN in the X-Admin-Token header.
"""

import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from ..config import settings

ADMIN_TOKEN_HEADER = "X-Admin-Token"


def is_valid_admin_token(token: Optional[str]) -> bool:
    if not token:
        return False
    return secrets.compare_digest(token.encode(), settings.admin_token.encode())


async def require_admin(x_admin_token: Optional[str] = Header(default=None, alias=ADMIN_TOKEN_HEADER)) -> None:
    """FastAPI dependency for admin-only routes"""
    if not is_valid_admin_token(x_admin_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
