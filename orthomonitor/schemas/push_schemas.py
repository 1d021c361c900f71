from typing import Optional
from pydantic import BaseModel, Field
from orthomonitor.schemas.common_schemas import APIModel, RequestModel


class PushKeysSchema(RequestModel):
    p256dh: str = Field(min_length=1)
    auth: str = Field(min_length=1)


class PushSubscribeSchema(RequestModel):
    endpoint: str = Field(min_length=1)
    keys: PushKeysSchema
    user_agent: Optional[str] = Field(default=None, max_length=512)


class PushUnsubscribeSchema(RequestModel):
    endpoint: str = Field(min_length=1)


class VapidKeyResponseSchema(APIModel):
    key: Optional[str] = None


class PushPayload(BaseModel):
    """JSON body delivered to the patient's service worker."""

    title: str
    body: str
    url: Optional[str] = None
    tag: Optional[str] = None
