"""Site, category, prompt and AI provider model definitions."""
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field


class SiteModel(BaseModel):
    """Remote WordPress site together with its credentials."""
    id: str = Field(alias="_id")
    name: str
    url: str
    username: str = ""
    app_password: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        populate_by_name = True


class CategoryModel(BaseModel):
    """Category on a remote site."""
    id: str = Field(alias="_id")
    site_id: str
    name: str
    remote_category_id: Optional[int] = None

    class Config:
        populate_by_name = True


class PromptModel(BaseModel):
    """Prompt template with `{{name}}` placeholders."""
    id: str = Field(alias="_id")
    name: str
    system_prompt: str = ""
    user_prompt: str
    placeholders: List[str] = Field(default_factory=list)

    class Config:
        populate_by_name = True


class AIProviderModel(BaseModel):
    """AI provider configuration used for generation."""
    id: str = Field(alias="_id")
    name: str
    provider: str
    model: str
    api_key: str = ""
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    is_active: bool = True

    class Config:
        populate_by_name = True
