from typing import Optional

from pydantic import BaseModel


class UserResponse(BaseModel):
    id: str
    username: str


class AccessToken(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str


class TokenData(BaseModel):
    username: Optional[str]
