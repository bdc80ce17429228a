"""Authentication schemas."""
from typing import Optional

from pydantic import BaseModel


class AuthenticatedUser(BaseModel):
    """User resolved from a platform access token."""
    id: str
    email: Optional[str] = None
    role: Optional[str] = None
