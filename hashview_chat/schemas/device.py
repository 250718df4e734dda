from pydantic import BaseModel, Field

from hashview_chat.models.device import PushPlatform


class DeviceRegisterRequest(BaseModel):

    platform: PushPlatform
    token: str = Field(min_length=1, max_length=4096)
