from datetime import timedelta

import pytest

from hashview_chat.core.exceptions import AccountDisabled, AuthenticationError, NotParticipant
from hashview_chat.utils.security import create_access_token, decode_access_token, hash_password, verify_password


def test_password_hashing():
    hashed = hash_password("secret123")
    assert hashed != "secret123"
    assert verify_password("secret123", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("secret123", "")


def test_token_round_trip():
    token = create_access_token("user-1")
    assert decode_access_token(token)["sub"] == "user-1"


def test_expired_token_is_rejected():
    token = create_access_token("user-1", expires_delta=timedelta(seconds=-1))
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_error_payloads():
    assert NotParticipant().to_payload() == {"success": False, "message": "Conversation not found"}
    assert AccountDisabled().status_code == 403
    assert isinstance(AccountDisabled(), AuthenticationError)
