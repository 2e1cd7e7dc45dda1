"""
Modelo SQLAlchemy para User.
"""

from sqlalchemy import Column, String, Boolean, DateTime, Uuid, and_
from condominio_api.db.base import Base, TimestampMixin
import uuid


class User(TimestampMixin, Base):
    """
    Representa um usuário do sistema.

    Atributos:
        id: UUID único
        email: Email do usuário (único)
        first_name / last_name: Nome
        hashed_password: Senha criptografada (bcrypt)
        is_active: Status do usuário
        is_super_admin: Conta privilegiada que ignora todas as concessões
        last_login: Último login
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    hashed_password = Column(String(255), nullable=False, default="")

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    is_super_admin = Column(Boolean, nullable=False, default=False)

    last_login = Column(DateTime(timezone=True), nullable=True)

    @classmethod
    def active_clause(cls):
        return and_(cls.is_active.is_(True), cls.deleted_at.is_(None))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, super_admin={self.is_super_admin})>"
