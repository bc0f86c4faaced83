"""Pydantic models for authentication."""
from pydantic import BaseModel, EmailStr
from typing import Optional


class UserResponse(BaseModel):
    """Identity read from the verified Auth0 token."""
    id: str
    email: Optional[EmailStr] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
