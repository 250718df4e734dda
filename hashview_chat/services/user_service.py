from typing import Optional

from pymongo.errors import DuplicateKeyError

from hashview_chat.core.exceptions import AuthenticationError, ValidationError
from hashview_chat.repositories.user_repository import UserRepository
from hashview_chat.schemas.user import Token, UserPublic
from hashview_chat.utils.security import create_access_token, hash_password, verify_password


class UserService:
    """Registration and login; just enough identity for the chat API."""

    def __init__(self, user_repository: UserRepository):
        self.user_repository = user_repository

    async def register_user(self, email: str, password: str, name: str) -> Token:
        """
        Create a user and return an access token for it.

        Email addresses are unique; the unique index backs the pre-check when
        two registrations race.
        """
        existing = await self.user_repository.get_user_by_email(email)
        if existing:
            raise ValidationError("Email already registered")

        try:
            new_id = await self.user_repository.create_user(
                email=email,
                hashed_password=hash_password(password),
                name=name,
            )
        except DuplicateKeyError as err:
            raise ValidationError("Email already registered") from err

        return self._token_for(UserPublic(id=new_id, email=email, name=name))

    async def authenticate_user(self, email: str, password: str) -> Token:
        user: Optional[dict] = await self.user_repository.get_user_by_email(email)
        if not user or not verify_password(password, user.get("hashed_password", "")):
            raise AuthenticationError("Invalid email or password")
        if not user.get("is_active", True):
            raise AuthenticationError("Account is disabled")
        return self._token_for(UserPublic(id=user["_id"], email=user["email"], name=user.get("name")))

    def _token_for(self, user: UserPublic) -> Token:
        return Token(access_token=create_access_token(user.id), user=user)
