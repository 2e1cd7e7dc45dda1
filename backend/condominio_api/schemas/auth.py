"""
Schemas Pydantic para Autenticação.
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime
import uuid


class UserLogin(BaseModel):
    """Schema para login de usuário."""

    email: EmailStr
    password: str = Field(..., min_length=6)


class Token(BaseModel):
    """Schema para resposta de token."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    """Schema para resposta de usuário."""

    id: uuid.UUID
    email: EmailStr
    first_name: str
    last_name: str
    is_active: bool
    is_super_admin: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
