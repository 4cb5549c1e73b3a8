"""Daily per-site publishing counters."""
from typing import Dict
from motor.motor_asyncio import AsyncIOMotorDatabase

from shared.utils import get_utc_now


class SiteStatsRepository:
    """Upserts one counter document per (site, UTC day)."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db.site_stats

    @staticmethod
    def _today() -> str:
        return get_utc_now().strftime("%Y-%m-%d")

    async def _increment(self, site_id: str, inc: Dict[str, int]):
        await self.collection.update_one(
            {"site_id": site_id, "date": self._today()},
            {"$inc": inc, "$set": {"updated_at": get_utc_now()}},
            upsert=True
        )

    async def record_article_published(self, site_id: str, word_count: int):
        """Count a published article and its words."""
        await self._increment(site_id, {"articles_published": 1, "total_words": word_count})

    async def record_article_failed(self, site_id: str):
        """Count a failed generation or publication."""
        await self._increment(site_id, {"articles_failed": 1})
