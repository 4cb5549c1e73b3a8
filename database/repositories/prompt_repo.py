"""Prompt and AI provider repositories."""
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase

from api.models.site import PromptModel, AIProviderModel


class PromptRepository:
    """Read access to prompt templates."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.prompts

    async def get(self, prompt_id: str) -> Optional[PromptModel]:
        """Get a prompt by ID."""
        doc = await self.collection.find_one({"_id": prompt_id})
        return PromptModel.model_validate(doc) if doc else None


class AIProviderRepository:
    """Read access to AI provider configurations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.ai_providers

    async def get(self, provider_id: str) -> Optional[AIProviderModel]:
        """Get a provider by ID."""
        doc = await self.collection.find_one({"_id": provider_id})
        return AIProviderModel.model_validate(doc) if doc else None
