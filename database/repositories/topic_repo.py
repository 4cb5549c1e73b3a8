"""Topic repository: topics, site assignments and the per-site usage ledger."""
from typing import Optional, List
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from api.models.topic import TopicModel
from shared.utils import get_utc_now


class TopicRepository:
    """
    Repository for Topic records.

    Usage is a site x topic fact stored in `used_topics`, so the same topic
    can be consumed independently by several sites. Topics are soft-deleted.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.topics
        self.assignments = db.site_topics
        self.usage = db.used_topics

    async def create(self, topic: TopicModel) -> TopicModel:
        """Insert a new topic."""
        await self.collection.insert_one(topic.model_dump(by_alias=True))
        return topic

    async def get(self, topic_id: str) -> Optional[TopicModel]:
        """Get a topic by ID."""
        doc = await self.collection.find_one({"_id": topic_id, "deleted_at": None})
        return TopicModel.model_validate(doc) if doc else None

    async def get_many(self, topic_ids: List[str]) -> List[TopicModel]:
        """Get topics by ID, preserving the order of `topic_ids`."""
        if not topic_ids:
            return []
        cursor = self.collection.find({"_id": {"$in": topic_ids}, "deleted_at": None})
        found = {doc["_id"]: TopicModel.model_validate(doc) for doc in await cursor.to_list(length=None)}
        return [found[topic_id] for topic_id in topic_ids if topic_id in found]

    async def _used_ids(self, site_id: str, topic_ids: List[str]) -> set:
        cursor = self.usage.find(
            {"site_id": site_id, "topic_id": {"$in": topic_ids}},
            {"topic_id": 1}
        )
        return {doc["topic_id"] for doc in await cursor.to_list(length=None)}

    async def get_unused(self, site_id: str, topic_ids: List[str]) -> List[TopicModel]:
        """Topics from `topic_ids` not yet used on the site, in `topic_ids` order."""
        topics = await self.get_many(topic_ids)
        if not topics:
            return []
        used = await self._used_ids(site_id, [topic.id for topic in topics])
        return [topic for topic in topics if topic.id not in used]

    async def count_unused(self, site_id: str, topic_ids: List[str]) -> int:
        """Number of topics from `topic_ids` not yet used on the site."""
        return len(await self.get_unused(site_id, topic_ids))

    async def mark_used(self, site_id: str, topic_id: str) -> bool:
        """Record that the site consumed the topic. Returns False if it already had."""
        try:
            await self.usage.insert_one({
                "site_id": site_id,
                "topic_id": topic_id,
                "used_at": get_utc_now()
            })
        except DuplicateKeyError:
            return False
        return True

    async def assign_to_site(self, site_id: str, topic_id: str) -> None:
        """Make a topic available to a site."""
        await self.assignments.update_one(
            {"site_id": site_id, "topic_id": topic_id},
            {"$setOnInsert": {"assigned_at": get_utc_now()}},
            upsert=True
        )

    async def get_assigned_for_site(self, site_id: str) -> List[TopicModel]:
        """All live topics assigned to a site, in assignment order."""
        cursor = self.assignments.find({"site_id": site_id}, {"topic_id": 1}).sort("assigned_at", 1)
        topic_ids = [doc["topic_id"] for doc in await cursor.to_list(length=None)]
        return await self.get_many(topic_ids)

    async def get_variations(self, parent_id: str) -> List[TopicModel]:
        """Live topics derived from the given original."""
        cursor = self.collection.find({"parent_id": parent_id, "deleted_at": None}).sort("created_at", 1)
        docs = await cursor.to_list(length=None)
        return [TopicModel.model_validate(doc) for doc in docs]
