"""Topic model definitions."""
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class TopicModel(BaseModel):
    """Candidate title; usage is tracked per site, not on the topic."""
    id: str = Field(alias="_id")
    title: str
    parent_id: Optional[str] = None
    created_at: datetime
    deleted_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
