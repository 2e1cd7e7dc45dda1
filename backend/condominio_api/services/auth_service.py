"""
Serviço de Autenticação.

Login por email e senha e emissão do token de acesso.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select
from fastapi import HTTPException, status
from typing import Optional

from condominio_api.config import get_settings
from condominio_api.core.logging import get_logger
from condominio_api.core.security import create_access_token, verify_password
from condominio_api.db.models.user import User
from condominio_api.services.grant_filters import utcnow


settings = get_settings()
logger = get_logger(__name__)


class AuthService:
    """Serviço para operações de autenticação."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def authenticate_user(
        self, email: str, password: str
    ) -> Optional[User]:
        """
        Autentica usuário com email e senha.

        Args:
            email: Email do usuário
            password: Senha em texto plano

        Returns:
            User se autenticado com sucesso, None caso contrário
        """
        result = await self.db.execute(
            select(User).where(
                func.lower(User.email) == email.strip().lower(),
                User.deleted_at.is_(None),
            )
        )
        user = result.scalar_one_or_none()

        if not user:
            return None

        if not verify_password(password, user.hashed_password):
            return None

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User account is inactive",
            )

        user.last_login = utcnow()
        await self.db.commit()
        await self.db.refresh(user)

        logger.info("user_logged_in", user_id=str(user.id))
        return user

    async def create_tokens(self, user: User) -> dict:
        """
        Cria o token de acesso.

        Args:
            user: Usuário autenticado

        Returns:
            Dict com access_token, token_type e expires_in (segundos)
        """
        access_token = create_access_token({"sub": str(user.id)})

        return {
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": settings.jwt_access_token_expire_minutes * 60,
        }
