"""WordPress REST API publisher."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from api.models.article import ArticleModel
from api.models.site import SiteModel
from shared.errors import CollaboratorError
from shared.utils import calculate_exponential_backoff

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class WordPressPublisher:
    """Creates and updates posts through `/wp-json/wp/v2/posts`."""

    def __init__(self, timeout: int = 30, max_retries: int = 3, base_delay: float = 1.0):
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @staticmethod
    def _posts_url(site: SiteModel, post_id: Optional[int] = None) -> str:
        url = f"{site.url.rstrip('/')}/wp-json/wp/v2/posts"
        if post_id is not None:
            url = f"{url}/{post_id}"
        return url

    async def _request(self, method: str, url: str, site: SiteModel, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send a request, retrying on transient HTTP statuses and network errors."""
        session = await self._get_session()
        auth = aiohttp.BasicAuth(site.username, site.app_password) if site.username else None

        for attempt in range(self.max_retries + 1):
            try:
                async with session.request(method, url, json=payload, auth=auth) as resp:
                    try:
                        body = await resp.json(content_type=None)
                    except ValueError:
                        body = await resp.text()

                    if resp.status in RETRY_STATUS_CODES and attempt < self.max_retries:
                        delay = calculate_exponential_backoff(attempt, self.base_delay)
                        logger.warning(f"Retryable error {resp.status} from {url}, retrying in {delay:.1f}s")
                        await asyncio.sleep(delay)
                        continue

                    if resp.status >= 400:
                        message = body.get("message", str(body)) if isinstance(body, dict) else str(body)
                        raise CollaboratorError(
                            "wordpress",
                            f"HTTP {resp.status} from {site.url}: {message}",
                            resp.status
                        )
                    return body if isinstance(body, dict) else {}

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if attempt >= self.max_retries:
                    raise CollaboratorError(
                        "wordpress",
                        f"network error after {self.max_retries} retries for {site.url}: {e}"
                    ) from e
                delay = calculate_exponential_backoff(attempt, self.base_delay)
                logger.warning(f"Network error on {url} ({type(e).__name__}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)

        raise CollaboratorError("wordpress", f"request to {url} failed after {self.max_retries} retries")

    async def create_post(
        self,
        site: SiteModel,
        article: ArticleModel,
        status: str,
        categories: Optional[List[int]] = None
    ) -> int:
        """Create a post and return its remote id."""
        payload: Dict[str, Any] = {
            "title": article.title,
            "content": article.content,
            "excerpt": article.excerpt,
            "status": status,
        }
        if categories:
            payload["categories"] = categories

        body = await self._request("POST", self._posts_url(site), site, payload)
        post_id = body.get("id")
        if post_id is None:
            raise CollaboratorError("wordpress", f"no post id in response from {site.url}")
        logger.info(f"Created {status} post {post_id} on {site.url}")
        return int(post_id)

    async def update_post(self, site: SiteModel, article: ArticleModel, status: str = "publish") -> None:
        """Update the post of an article that already exists remotely."""
        if article.remote_post_id is None:
            raise CollaboratorError("wordpress", f"article {article.id} has no remote post")
        payload = {
            "title": article.title,
            "content": article.content,
            "excerpt": article.excerpt,
            "status": status,
        }
        await self._request("POST", self._posts_url(site, article.remote_post_id), site, payload)
        logger.info(f"Updated post {article.remote_post_id} on {site.url}")
