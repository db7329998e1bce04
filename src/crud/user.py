from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.constants.config import pwd_context
from src.models.sqlmodels.user import User
from src.utils.exceptions import ValidationError
from src.utils.logger import logger


class UserCRUD:
    @staticmethod
    def get_password_hash(password):
        return pwd_context.hash(password)

    @staticmethod
    async def create(
        username: str,
        password: str,
        db: AsyncSession,
    ):
        if len(password) < 8:
            raise ValidationError("Password must be at least 8 characters long")
        try:
            new_user = User(
                username=username,
                hashed_password=UserCRUD.get_password_hash(password),
            )
            new_user.disabled = False
            db.add(new_user)
            await db.commit()
            await db.refresh(new_user)
            return new_user
        except IntegrityError:
            await db.rollback()
            logger.info("Username already taken", username=username)
            raise ValidationError("This username is already taken")

    @staticmethod
    async def get_by_username(identifier: str, db: AsyncSession):
        result = await db.execute(
            select(User).where(
                (User.username == identifier),
                (User.disabled == False),  # noqa
            )
        )
        return result.scalar_one_or_none()
