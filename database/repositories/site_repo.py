"""Site and category repositories."""
from typing import Optional, List
from motor.motor_asyncio import AsyncIOMotorDatabase

from api.models.site import SiteModel, CategoryModel


class SiteRepository:
    """Read access to sites."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.sites

    async def get_with_credentials(self, site_id: str) -> Optional[SiteModel]:
        """Get a site including its publishing credentials."""
        doc = await self.collection.find_one({"_id": site_id})
        return SiteModel.model_validate(doc) if doc else None


class CategoryRepository:
    """Read access to site categories."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.categories

    async def get(self, category_id: str) -> Optional[CategoryModel]:
        """Get a category by ID."""
        doc = await self.collection.find_one({"_id": category_id})
        return CategoryModel.model_validate(doc) if doc else None

    async def get_many(self, category_ids: List[str]) -> List[CategoryModel]:
        """Get categories by ID, preserving the order of `category_ids`."""
        cursor = self.collection.find({"_id": {"$in": category_ids}})
        found = {doc["_id"]: CategoryModel.model_validate(doc) for doc in await cursor.to_list(length=None)}
        return [found[category_id] for category_id in category_ids if category_id in found]
