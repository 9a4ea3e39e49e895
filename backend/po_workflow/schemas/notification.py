"""
Notification and device token schemas
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    body: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DeviceTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=512)
    device_info: Optional[str] = Field(None, max_length=255)


class DeviceTokenResponse(BaseModel):
    id: int
    user_id: str
    token: str
    device_info: Optional[str] = None
    last_used_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CountResponse(BaseModel):
    """Number of rows affected by a bulk inbox action"""
    count: int
