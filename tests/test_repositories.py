"""Repository tests against a mocked Motor database."""
from datetime import datetime, timezone

import pytest
from pymongo.errors import DuplicateKeyError
from unittest.mock import AsyncMock, MagicMock

from api.models import JobStatusEnum
from database.repositories import JobRepository, JobStateRepository, SiteStatsRepository, TopicRepository


NOW = datetime(2024, 2, 6, 10, 0, tzinfo=timezone.utc)


def mock_cursor(docs):
    """Cursor mock supporting the chained calls the repositories use."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=docs)
    return cursor


def job_doc(job_id, status="active"):
    return {
        "_id": job_id,
        "name": job_id,
        "site_id": "site_1",
        "prompt_id": "prompt_1",
        "ai_provider_id": "prov_1",
        "categories": ["cat_a"],
        "topics": ["topic_1"],
        "schedule": {"type": "interval", "value": 1, "unit": "hours"},
        "status": status,
        "created_at": NOW,
        "updated_at": NOW,
    }


def topic_doc(topic_id, parent_id=None):
    return {"_id": topic_id, "title": topic_id.title(), "parent_id": parent_id, "created_at": NOW}


class TestJobRepository:
    """Tests for JobRepository."""

    @pytest.mark.asyncio
    async def test_get_due_keeps_next_run_order(self, mock_mongo_db):
        """Test due jobs come back earliest first, active only."""
        mock_mongo_db.job_states.find = MagicMock(
            return_value=mock_cursor([{"_id": "job_b"}, {"_id": "job_a"}, {"_id": "job_c"}])
        )
        mock_mongo_db.jobs.find = MagicMock(return_value=mock_cursor([job_doc("job_a"), job_doc("job_b")]))
        repo = JobRepository(mock_mongo_db)

        jobs = await repo.get_due(NOW)

        query = mock_mongo_db.job_states.find.call_args[0][0]
        assert query == {"next_run_at": {"$ne": None, "$lte": NOW}}
        assert [job.id for job in jobs] == ["job_b", "job_a"]
        assert mock_mongo_db.jobs.find.call_args[0][0]["status"] == "active"

    @pytest.mark.asyncio
    async def test_get_due_nothing_scheduled(self, mock_mongo_db):
        """Test no job query is made when nothing is due."""
        mock_mongo_db.job_states.find = MagicMock(return_value=mock_cursor([]))
        repo = JobRepository(mock_mongo_db)

        assert await repo.get_due(NOW) == []
        mock_mongo_db.jobs.find.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_parses_document(self, mock_mongo_db):
        """Test documents are loaded into JobModel."""
        mock_mongo_db.jobs.find_one = AsyncMock(return_value=job_doc("job_a", status="paused"))
        repo = JobRepository(mock_mongo_db)

        job = await repo.get("job_a")

        assert job.id == "job_a"
        assert job.status == JobStatusEnum.PAUSED
        assert job.schedule.type == "interval"

    @pytest.mark.asyncio
    async def test_update_status(self, mock_mongo_db):
        """Test the status is stored as its value."""
        mock_mongo_db.jobs.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
        repo = JobRepository(mock_mongo_db)

        assert await repo.update_status("job_a", JobStatusEnum.PAUSED)
        update = mock_mongo_db.jobs.update_one.call_args[0][1]
        assert update["$set"]["status"] == "paused"


class TestJobStateRepository:
    """Tests for JobStateRepository."""

    @pytest.mark.asyncio
    async def test_increment_failed(self, mock_mongo_db):
        """Test a failed run bumps both counters."""
        mock_mongo_db.job_states.update_one = AsyncMock(return_value=MagicMock(matched_count=1))
        repo = JobStateRepository(mock_mongo_db)

        await repo.increment_executions("job_a", failed=True)

        update = mock_mongo_db.job_states.update_one.call_args[0][1]
        assert update == {"$inc": {"total_executions": 1, "failed_executions": 1}}

    @pytest.mark.asyncio
    async def test_create_zeroed(self, mock_mongo_db):
        """Test new states start from zero, keyed by job id."""
        mock_mongo_db.job_states.insert_one = AsyncMock()
        repo = JobStateRepository(mock_mongo_db)

        state = await repo.create("job_a")

        doc = mock_mongo_db.job_states.insert_one.call_args[0][0]
        assert doc["_id"] == "job_a"
        assert doc["total_executions"] == 0
        assert doc["next_run_at"] is None
        assert state.last_category_index == 0


class TestTopicRepository:
    """Tests for TopicRepository."""

    @pytest.fixture
    def db(self):
        db = MagicMock()
        db.topics = MagicMock()
        db.site_topics = MagicMock()
        db.used_topics = MagicMock()
        return db

    @pytest.mark.asyncio
    async def test_get_unused_preserves_order(self, db):
        """Test unused topics follow the requested order."""
        db.topics.find = MagicMock(return_value=mock_cursor(
            [topic_doc("topic_1"), topic_doc("topic_2"), topic_doc("topic_3")]
        ))
        db.used_topics.find = MagicMock(return_value=mock_cursor([{"topic_id": "topic_2"}]))
        repo = TopicRepository(db)

        topics = await repo.get_unused("site_1", ["topic_3", "topic_2", "topic_1"])

        assert [t.id for t in topics] == ["topic_3", "topic_1"]
        usage_query = db.used_topics.find.call_args[0][0]
        assert usage_query["site_id"] == "site_1"

    @pytest.mark.asyncio
    async def test_mark_used_twice(self, db):
        """Test a repeated usage record is refused by the unique index."""
        db.used_topics.insert_one = AsyncMock(side_effect=[None, DuplicateKeyError("dup")])
        repo = TopicRepository(db)

        assert await repo.mark_used("site_1", "topic_1") is True
        assert await repo.mark_used("site_1", "topic_1") is False

    @pytest.mark.asyncio
    async def test_get_variations(self, db):
        """Test variations are looked up by their original."""
        db.topics.find = MagicMock(return_value=mock_cursor([topic_doc("topic_9", parent_id="topic_1")]))
        repo = TopicRepository(db)

        variations = await repo.get_variations("topic_1")

        assert variations[0].parent_id == "topic_1"
        assert db.topics.find.call_args[0][0] == {"parent_id": "topic_1", "deleted_at": None}


class TestSiteStatsRepository:
    """Tests for SiteStatsRepository."""

    @pytest.mark.asyncio
    async def test_record_published_upserts_daily_counter(self, mock_mongo_db):
        """Test published articles increment today's counters."""
        mock_mongo_db.site_stats = MagicMock()
        mock_mongo_db.site_stats.update_one = AsyncMock()
        repo = SiteStatsRepository(mock_mongo_db)

        await repo.record_article_published("site_1", 850)

        query, update = mock_mongo_db.site_stats.update_one.call_args[0]
        assert query["site_id"] == "site_1"
        assert len(query["date"]) == 10
        assert update["$inc"] == {"articles_published": 1, "total_words": 850}
        assert mock_mongo_db.site_stats.update_one.call_args[1]["upsert"] is True
