"""Async Omi API client with pagination and HTTP 429 backoff."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
from pydantic import ValidationError

from .config import DEFAULT_BASE_URL, Config
from .errors import ApiError, RateLimitedError
from .types import ActionItemRecord, Conversation, MemoryRecord

logger = logging.getLogger(__name__)

CONVERSATIONS_PATH = "/v1/dev/user/conversations"
ACTION_ITEMS_PATH = "/v1/dev/user/action-items"
MEMORIES_PATH = "/v1/dev/user/memories"

ACTION_ITEMS_PAGE = 100
ACTION_ITEMS_PAGE_DELAY = 0.3

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(retries: int, base_delay: float) -> float:
    """Exponential backoff: ``base × 2^retries`` seconds."""
    return base_delay * (2**retries)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Interpret a ``Retry-After`` header as a delay in seconds.

    Numeric values are seconds; anything else is read as an absolute
    timestamp (HTTP-date or ISO 8601) and converted to the time remaining.
    Returns ``None`` when the header is missing or unparseable.
    """
    if not value or not value.strip():
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass

    try:
        target = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            target = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (target - now).total_seconds())


class OmiClient:
    """Client for the Omi developer API.

    Every HTTP attempt (including retries and failures) increments
    ``request_count``. Pagination is strictly sequential with a fixed pause
    between pages.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        *,
        page_size: int = 100,
        max_retries: int = 5,
        retry_base_delay: float = 1.0,
        page_delay: float = 0.5,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.page_size = page_size
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.page_delay = page_delay
        self.request_count = 0
        self._sleep = sleep
        self._api_key = api_key
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_config(cls, config: Config, **kwargs: Any) -> "OmiClient":
        return cls(
            config.api_key,
            config.base_url,
            page_size=config.page_size,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay,
            page_delay=config.page_delay,
            timeout=config.request_timeout,
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def pause(self, seconds: float) -> None:
        """Pacing delay, routed through the injectable sleep."""
        await self._sleep(seconds)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "OmiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        retries = 0
        while True:
            self.request_count += 1
            try:
                response = await self._http.request(
                    method,
                    path,
                    params=params,
                    json=body,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
            except httpx.HTTPError as e:
                raise ApiError(f"{method} {path} failed: {e}") from e

            if response.status_code == 429:
                retry_after = parse_retry_after(response.headers.get("retry-after"))
                if retries >= self.max_retries:
                    raise RateLimitedError(
                        f"{method} {path} still rate limited after {retries} retries",
                        retry_after=retry_after,
                    )
                delay = (
                    retry_after
                    if retry_after is not None
                    else backoff_delay(retries, self.retry_base_delay)
                )
                logger.warning(
                    "Rate limit exceeded on %s %s; retrying in %.1fs (%d/%d)",
                    method,
                    path,
                    delay,
                    retries + 1,
                    self.max_retries,
                )
                await self._sleep(delay)
                retries += 1
                continue

            if response.is_error:
                raise ApiError(
                    f"{method} {path} returned HTTP {response.status_code}",
                    status_code=response.status_code,
                )
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise ApiError(f"{method} {path} returned invalid JSON") from e

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def fetch_page(
        self,
        offset: int = 0,
        *,
        limit: int | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[Conversation]:
        """Fetch one newest-first page of conversations.

        ``start_date`` is inclusive and ``end_date`` exclusive; both are
        applied server-side.
        """
        params: dict[str, Any] = {
            "limit": limit or self.page_size,
            "offset": offset,
            "include_transcript": "true",
        }
        if start_date:
            params["start_date"] = start_date
        if end_date:
            params["end_date"] = end_date

        data = await self._request("GET", CONVERSATIONS_PATH, params=params)
        if data is None:
            return []
        if not isinstance(data, list):
            raise ApiError(f"GET {CONVERSATIONS_PATH} returned an invalid response format")
        try:
            return [Conversation.model_validate(item) for item in data]
        except ValidationError as e:
            raise ApiError(
                f"GET {CONVERSATIONS_PATH} returned a malformed conversation: {e}"
            ) from e

    async def iter_conversation_pages(
        self,
        *,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> AsyncIterator[list[Conversation]]:
        """Yield pages until an empty or short page signals the end."""
        offset = 0
        while True:
            page = await self.fetch_page(offset, start_date=start_date, end_date=end_date)
            if not page:
                return
            yield page
            if len(page) < self.page_size:
                return
            offset += self.page_size
            await self._sleep(self.page_delay)

    async def get_all_conversations(
        self,
        start_date: str | None = None,
        end_date: str | None = None,
    ) -> list[Conversation]:
        conversations: list[Conversation] = []
        async for page in self.iter_conversation_pages(
            start_date=start_date, end_date=end_date
        ):
            conversations.extend(page)
        return conversations

    # ------------------------------------------------------------------
    # Action items
    # ------------------------------------------------------------------

    async def get_action_items(
        self,
        limit: int | None = None,
        offset: int | None = None,
        completed: bool | None = None,
    ) -> list[ActionItemRecord]:
        params: dict[str, Any] = {}
        if limit:
            params["limit"] = limit
        if offset:
            params["offset"] = offset
        if completed is not None:
            params["completed"] = str(completed).lower()
        data = await self._request("GET", ACTION_ITEMS_PATH, params=params)
        return [ActionItemRecord.model_validate(item) for item in data or []]

    async def get_all_action_items(self) -> list[ActionItemRecord]:
        items: list[ActionItemRecord] = []
        offset = 0
        while True:
            page = await self.get_action_items(limit=ACTION_ITEMS_PAGE, offset=offset)
            if not page:
                break
            items.extend(page)
            if len(page) < ACTION_ITEMS_PAGE:
                break
            offset += ACTION_ITEMS_PAGE
            await self._sleep(ACTION_ITEMS_PAGE_DELAY)
        return items

    async def create_action_item(
        self, description: str, due_at: str | None = None
    ) -> ActionItemRecord:
        body: dict[str, Any] = {"description": description}
        if due_at:
            body["due_at"] = due_at
        data = await self._request("POST", ACTION_ITEMS_PATH, body=body)
        return ActionItemRecord.model_validate(data)

    async def update_action_item(
        self, item_id: str, updates: dict[str, Any]
    ) -> ActionItemRecord:
        """PATCH an action item. ``updates`` may hold description, completed, due_at."""
        data = await self._request("PATCH", f"{ACTION_ITEMS_PATH}/{item_id}", body=updates)
        return ActionItemRecord.model_validate(data)

    async def delete_action_item(self, item_id: str) -> None:
        await self._request("DELETE", f"{ACTION_ITEMS_PATH}/{item_id}")

    # ------------------------------------------------------------------
    # Memories
    # ------------------------------------------------------------------

    async def get_all_memories(self, limit: int = 500) -> list[MemoryRecord]:
        data = await self._request("GET", MEMORIES_PATH, params={"limit": limit})
        return [MemoryRecord.model_validate(item) for item in data or []]

    async def create_memory(
        self,
        content: str,
        category: str | None = None,
        visibility: str | None = None,
        tags: list[str] | None = None,
    ) -> MemoryRecord:
        body: dict[str, Any] = {"content": content}
        if category:
            body["category"] = category
        if visibility:
            body["visibility"] = visibility
        if tags:
            body["tags"] = tags
        data = await self._request("POST", MEMORIES_PATH, body=body)
        return MemoryRecord.model_validate(data)

    async def update_memory(self, memory_id: str, updates: dict[str, Any]) -> MemoryRecord:
        data = await self._request("PATCH", f"{MEMORIES_PATH}/{memory_id}", body=updates)
        return MemoryRecord.model_validate(data)

    async def delete_memory(self, memory_id: str) -> None:
        await self._request("DELETE", f"{MEMORIES_PATH}/{memory_id}")
