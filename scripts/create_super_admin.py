import argparse
import asyncio

from sqlalchemy import func, select

from condominio_api.core.security import get_password_hash
from condominio_api.db.base import AsyncSessionLocal, engine
from condominio_api.db.models.user import User


async def create_super_admin(email: str, password: str, first_name: str, last_name: str):
    async with AsyncSessionLocal() as session:
        result = await session.execute(
            select(User).where(func.lower(User.email) == email.lower())
        )
        user = result.scalar_one_or_none()

        if user:
            user.is_super_admin = True
            user.is_active = True
            user.hashed_password = get_password_hash(password)
            print(f"User {user.email} promoted to super-admin (password reset).")
        else:
            user = User(
                email=email.lower(),
                first_name=first_name,
                last_name=last_name,
                hashed_password=get_password_hash(password),
                is_active=True,
                is_super_admin=True,
            )
            session.add(user)
            print(f"Super-admin {email.lower()} created.")

        await session.commit()

    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Cria ou promove um super-admin.")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--first-name", default="Admin")
    parser.add_argument("--last-name", default="Sistema")
    args = parser.parse_args()

    asyncio.run(create_super_admin(args.email, args.password, args.first_name, args.last_name))
