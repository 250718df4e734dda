from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from hashview_chat.schemas.common import CamelModel


class UserBase(BaseModel):

    email: EmailStr


class UserCreate(UserBase):

    password: str = Field(min_length=6)
    name: str = Field(min_length=1, max_length=100)


class LoginRequest(UserBase):

    password: str


class UserPublic(CamelModel):

    id: str
    email: EmailStr
    name: Optional[str] = None


class Token(CamelModel):

    access_token: str
    token_type: str = "bearer"
    user: UserPublic
