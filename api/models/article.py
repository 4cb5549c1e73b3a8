"""Article model definitions."""
from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class ArticleStatusEnum(str, Enum):
    """Article status enumeration."""
    DRAFT = "draft"
    PUBLISHED = "published"
    FAILED = "failed"


class ArticleModel(BaseModel):
    """Generated article owned by a site."""
    id: str = Field(alias="_id")
    site_id: str
    job_id: Optional[str] = None
    topic_id: Optional[str] = None
    category_id: Optional[str] = None
    title: str
    excerpt: str = ""
    content: str
    word_count: int = 0
    status: ArticleStatusEnum = ArticleStatusEnum.DRAFT
    remote_post_id: Optional[int] = None
    remote_post_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    published_at: Optional[datetime] = None

    class Config:
        populate_by_name = True
