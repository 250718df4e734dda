"""
Domain errors for the messaging service.

Each error carries the HTTP status it maps to; the REST layer renders them as
``{"success": false, "message": ..., "errors": ...}`` and the realtime gateway
turns them into ``error`` events for the originating session.
"""

from typing import Any, List, Optional

from fastapi import status


class ChatError(Exception):

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_payload(self) -> dict:
        payload: dict = {"success": False, "message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class ValidationError(ChatError):
    """Malformed input; the caller can fix it and retry."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class InvalidContent(ValidationError):

    default_message = "Message must have text or media"


class AuthenticationError(ChatError):

    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Could not validate credentials"


class AccountDisabled(AuthenticationError):

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Account is disabled"


class NotFound(ChatError):

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class NotParticipant(ChatError):
    """Caller is not part of the conversation.

    Reported as 404 so that a conversation's existence is not leaked.
    """

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Conversation not found"


class NotOwner(ChatError):

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class AlreadyDeleted(ChatError):

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Message not found"


class TransientDependencyFailure(ChatError):
    """A secondary dependency (push provider, presence mirror) failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Dependency unavailable"
