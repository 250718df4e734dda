from datetime import datetime
from typing import Literal, TypedDict


# only "fcm" endpoints are pushed to; "webpush" tokens are stored for clients that register them
PushPlatform = Literal["fcm", "webpush"]


class DeviceDocument(TypedDict, total=False):
    _id: str
    user_id: str
    platform: PushPlatform
    token: str
    registered_at: datetime
    last_seen_at: datetime
