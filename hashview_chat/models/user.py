from datetime import datetime
from typing import Optional, TypedDict


class UserDocument(TypedDict, total=False):
    """Identity fields the messaging engine reads; profile data lives elsewhere."""

    _id: str
    email: str
    hashed_password: str
    name: str
    # disabled accounts cannot authenticate over REST or the realtime gateway
    is_active: bool
    last_seen: Optional[datetime]
