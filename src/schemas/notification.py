from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional


class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    type: str
    category: str
    metadata: dict = Field(default_factory=dict, validation_alias="meta")
    is_read: bool
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
