"""
Schemas de administração de módulos, permissões e pools.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field, field_validator, model_validator

from condominio_api.core.permissions import (
    ModuleType,
    Scope,
    normalize_scope_id,
    validate_scope_id,
)


# ---------------------------------------------------------------------------
# Módulos
# ---------------------------------------------------------------------------


class ModulePermissionResponse(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None

    class Config:
        from_attributes = True


class ModuleResponse(BaseModel):
    id: uuid.UUID
    code: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    type: ModuleType
    order: int
    is_active: bool
    permissions: List[ModulePermissionResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ModulePermissionCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None

    @field_validator("code")
    @classmethod
    def _validate_code(cls, value: str) -> str:
        normalized = value.strip().lower()
        if ":" in normalized or " " in normalized:
            raise ValueError("código da ação não pode conter ':' ou espaços")
        return normalized


class ModuleCreate(BaseModel):
    """Payload de criação de módulo com suas ações."""

    code: str = Field(..., min_length=2, max_length=50)
    name: str = Field(..., min_length=2, max_length=100)
    type: ModuleType = ModuleType.CRUD
    description: Optional[str] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    order: int = 0
    permissions: List[ModulePermissionCreate] = Field(default_factory=list)

    @field_validator("code")
    @classmethod
    def _validate_code(cls, value: str) -> str:
        normalized = value.strip().lower()
        if ":" in normalized or " " in normalized:
            raise ValueError("código do módulo não pode conter ':' ou espaços")
        return normalized


class ModuleUpdate(BaseModel):
    """Payload de atualização parcial de módulo."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = None
    icon: Optional[str] = Field(default=None, max_length=50)
    order: Optional[int] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------------
# Concessões
# ---------------------------------------------------------------------------


class ModuleGrantRequest(BaseModel):
    module_id: uuid.UUID
    expires_at: Optional[datetime] = None


class PermissionGrantRequest(BaseModel):
    """Concessão granular. ``scope_id`` é obrigatório apenas para escopo tenant."""

    permission_id: uuid.UUID
    scope: Scope = Scope.ALL
    scope_id: Optional[str] = Field(default=None, max_length=100)
    expires_at: Optional[datetime] = None

    @field_validator("scope_id")
    @classmethod
    def _normalize_scope_id(cls, value: Optional[str]) -> Optional[str]:
        return normalize_scope_id(value)

    @model_validator(mode="after")
    def _validate_scope(self):
        error = validate_scope_id(self.scope, self.scope_id)
        if error:
            raise ValueError(error)
        return self


class UserModuleGrantResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    module_id: uuid.UUID
    is_active: bool
    granted_by: Optional[uuid.UUID] = None
    granted_at: datetime
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserPermissionGrantResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    permission_id: uuid.UUID
    scope: Scope
    scope_id: Optional[str] = None
    is_active: bool
    granted_by: Optional[uuid.UUID] = None
    granted_at: datetime
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    is_active: bool
    is_super_admin: bool

    class Config:
        from_attributes = True


class EffectiveModule(BaseModel):
    module_id: Optional[uuid.UUID] = None
    module_code: str
    module_name: Optional[str] = None
    source: str
    pool_name: Optional[str] = None
    expires_at: Optional[datetime] = None


class EffectivePermission(BaseModel):
    id: Optional[uuid.UUID] = None
    module_code: str
    code: str
    scope: Scope
    scope_id: Optional[str] = None
    source: str
    pool_name: Optional[str] = None
    expires_at: Optional[datetime] = None


class UserEffectivePermissions(BaseModel):
    user: UserSummary
    is_super_admin: bool
    modules: List[EffectiveModule]
    permissions: List[EffectivePermission]


class ModuleUser(BaseModel):
    user: UserSummary
    source: str
    pool_name: Optional[str] = None


class UserSearchResponse(BaseModel):
    items: List[UserSummary]
    total: int
    page: int
    limit: int


# ---------------------------------------------------------------------------
# Sessão
# ---------------------------------------------------------------------------


class NavigationModule(BaseModel):
    code: str
    name: str
    icon: Optional[str] = None
    type: ModuleType
    order: int
    actions: List[str]


class ScopedPermission(BaseModel):
    code: str
    scope: Scope
    scope_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Pools
# ---------------------------------------------------------------------------


class PoolCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None


class PoolUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class PoolResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_active: bool
    created_by: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PoolListItem(PoolResponse):
    member_count: int = 0


class PoolMemberRequest(BaseModel):
    user_id: uuid.UUID


class PoolMemberResponse(BaseModel):
    id: uuid.UUID
    pool_id: uuid.UUID
    user_id: uuid.UUID
    is_active: bool
    added_by: Optional[uuid.UUID] = None
    added_at: datetime

    class Config:
        from_attributes = True


class PoolModuleResponse(BaseModel):
    id: uuid.UUID
    pool_id: uuid.UUID
    module_id: uuid.UUID
    is_active: bool
    granted_at: datetime
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PoolPermissionResponse(BaseModel):
    id: uuid.UUID
    pool_id: uuid.UUID
    permission_id: uuid.UUID
    scope: Scope
    scope_id: Optional[str] = None
    is_active: bool
    granted_at: datetime
    expires_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PoolDetail(BaseModel):
    pool: PoolResponse
    members: List[UserSummary]
    modules: List[PoolModuleResponse]
    permissions: List[PoolPermissionResponse]
