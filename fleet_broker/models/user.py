"""
User account model.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class User(BaseModel):
    """Account created on the first successful OAuth callback."""

    id: int
    email: str
    name: Optional[str] = None
    external_user_id: Optional[str] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime


__all__ = ["User"]
