from condominio_api.db.models.user import User
from condominio_api.db.models.module import Module, ModulePermission
from condominio_api.db.models.user_grant import UserModule, UserPermission
from condominio_api.db.models.pool import Pool, PoolMember, PoolModule, PoolPermission

__all__ = [
    "User",
    "Module",
    "ModulePermission",
    "UserModule",
    "UserPermission",
    "Pool",
    "PoolMember",
    "PoolModule",
    "PoolPermission",
]
