from typing import Annotated

from fastapi import APIRouter, Depends, Form, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from src.crud.auth import AuthCRUD
from src.crud.user import UserCRUD
from src.models.basemodels.user import AccessToken, UserResponse
from src.models.dependency import get_session
from src.utils.logger import logger


class AuthController:
    tags = ["auth"]
    router = APIRouter(tags=tags)

    @staticmethod
    @router.post("/signup/", status_code=status.HTTP_200_OK)
    async def signup(
        username: str = Form(...),
        password: str = Form(...),
        db: AsyncSession = Depends(get_session),
    ) -> UserResponse:
        user = await UserCRUD.create(username, password, db)
        logger.info("User signed up", user_id=user.id)
        return UserResponse(id=user.id, username=user.username)

    @staticmethod
    @router.post("/login", response_model=AccessToken, status_code=status.HTTP_200_OK)
    async def login_for_access_token(
        form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
        db: AsyncSession = Depends(get_session),
    ):
        return await AuthCRUD.signin(form_data, db)
