from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from src.constants.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    oauth2_scheme,
    pwd_context,
)
from src.constants.env import SECRET_KEY
from src.crud.user import UserCRUD
from src.models.basemodels.user import AccessToken, TokenData
from src.models.dependency import get_session
from src.utils.exceptions import AuthError


class AuthCRUD:
    @staticmethod
    def create_access_token(data: dict, expires_delta: timedelta | None = None):
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=15))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def verify_password(plain_password, hashed_password):
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    async def authenticate_user(identifier: str, password: str, db: AsyncSession):
        user = await UserCRUD.get_by_username(identifier, db)
        if not user:
            return False
        if not AuthCRUD.verify_password(password, user.hashed_password):
            return False
        return user

    @staticmethod
    async def signin(
        form_data: OAuth2PasswordRequestForm,
        db: AsyncSession,
    ) -> AccessToken:
        user = await AuthCRUD.authenticate_user(
            form_data.username, form_data.password, db
        )
        if not user:
            raise AuthError("Incorrect username or password")
        access_token = AuthCRUD.create_access_token(
            data={"sub": user.username},
            expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        )
        return AccessToken(
            access_token=access_token,
            token_type="Bearer",
        )

    @staticmethod
    def get_current_user_with_access():
        async def dependency(
            token: Annotated[str, Depends(oauth2_scheme)],
            db: AsyncSession = Depends(get_session),
        ):
            return await AuthCRUD.get_current_user(token=token, db=db)

        return dependency

    @staticmethod
    async def get_current_user(token: str, db: AsyncSession):
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
            username: str = payload.get("sub")
            if username is None:
                raise AuthError("Could not validate credentials")
            token_data = TokenData(username=username)
        except (JWTError, PydanticValidationError):
            raise AuthError("Could not validate credentials")
        user = await UserCRUD.get_by_username(token_data.username, db)
        if user is None:
            raise AuthError("Could not validate credentials")
        return user
