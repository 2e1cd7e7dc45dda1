"""
Endpoints de Autenticação API v1.

Rotas para login e dados do usuário autenticado.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from condominio_api.db.base import get_db
from condominio_api.schemas.auth import UserLogin, Token, UserResponse
from condominio_api.services.auth_service import AuthService
from condominio_api.api.deps import get_current_user
from condominio_api.db.models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=Token)
async def login(
    user_login: UserLogin,
    db: AsyncSession = Depends(get_db),
):
    """
    Autentica usuário e retorna o token JWT.

    Args:
        user_login: Email e senha
        db: Sessão do banco

    Returns:
        Token com access_token
    """
    auth_service = AuthService(db)

    user = await auth_service.authenticate_user(
        user_login.email,
        user_login.password
    )

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )

    return await auth_service.create_tokens(user)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
):
    """
    Retorna informações do usuário autenticado.
    """
    return UserResponse.model_validate(current_user)
