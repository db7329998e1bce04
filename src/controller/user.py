from typing import Annotated

from fastapi import APIRouter, Security, status

from src.crud.auth import AuthCRUD
from src.models.basemodels.user import UserResponse
from src.models.sqlmodels.user import User


class UserController:
    tags = ["user"]
    router = APIRouter(tags=tags)

    @staticmethod
    @router.get("/me/", response_model=UserResponse, status_code=status.HTTP_200_OK)
    async def read_user_me(
        current_user: Annotated[
            User,
            Security(
                AuthCRUD.get_current_user_with_access(),
            ),
        ],
    ):
        return UserResponse(id=current_user.id, username=current_user.username)
