"""Article repository for CRUD operations on Articles collection."""
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase

from api.models.article import ArticleModel
from shared.utils import get_utc_now


class ArticleRepository:
    """Repository for Article CRUD operations."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.articles

    async def create(self, article: ArticleModel) -> ArticleModel:
        """Insert a new article record."""
        await self.collection.insert_one(article.model_dump(by_alias=True))
        return article

    async def get(self, article_id: str) -> Optional[ArticleModel]:
        """Get an article by ID."""
        doc = await self.collection.find_one({"_id": article_id})
        return ArticleModel.model_validate(doc) if doc else None

    async def update(self, article: ArticleModel) -> bool:
        """Write back an article."""
        article.updated_at = get_utc_now()
        doc = article.model_dump(by_alias=True)
        doc.pop("_id")
        result = await self.collection.update_one({"_id": article.id}, {"$set": doc})
        return result.matched_count > 0

