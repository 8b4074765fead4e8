"""Pydantic schemas for authentication"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class AuthUser(BaseModel):
    """User record returned by the auth provider"""
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)
