"""Page models for both API dialects and iterators that walk them

Cloud pages carry an absolute ``next`` URL. Server/DC pages carry
``isLastPage`` and ``nextPageStart``; the next page is the same request
repeated with ``start`` set to that value.
"""

import logging
from typing import Any, AsyncIterator, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .errors import ResponseDecodeError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_LIMIT = 25


class CursorPage(BaseModel, Generic[T]):
    """Cloud (2.0) paginated response"""
    values: List[T] = []
    next: Optional[str] = None
    previous: Optional[str] = None
    page: Optional[int] = None
    pagelen: Optional[int] = None
    size: Optional[int] = None

    def has_next(self) -> bool:
        return self.next is not None

    def next_url(self) -> Optional[str]:
        return self.next


class OffsetPage(BaseModel, Generic[T]):
    """Server/DC (1.0) paginated response

    ``size`` is the number of items in this page, not a total.
    """
    model_config = ConfigDict(populate_by_name=True)

    values: List[T] = []
    size: int
    limit: int
    is_last_page: bool = Field(alias="isLastPage")
    next_page_start: Optional[int] = Field(default=None, alias="nextPageStart")
    start: int

    @model_validator(mode="after")
    def _check_continuation(self) -> "OffsetPage":
        if not self.is_last_page and self.next_page_start is None:
            raise ValueError("nextPageStart is required when isLastPage is false")
        return self

    def has_next(self) -> bool:
        return not self.is_last_page

    def next_start(self) -> Optional[int]:
        if self.is_last_page:
            return None
        return self.next_page_start


async def iter_cursor_pages(
    client,
    path: str,
    item_model: Any,
    params: Optional[Dict[str, Any]] = None,
) -> AsyncIterator[CursorPage]:
    """Yield every Cloud page starting at ``path``

    Args:
        client: BitbucketClient for a Cloud host
        path: API path of the first page
        item_model: Type each value is decoded as
        params: Query parameters for the first request only
    """
    page_model = CursorPage[item_model]
    page = await client.get(path, model=page_model, params=params)
    yield page
    while page.has_next():
        logger.debug(f"Following next page link {page.next_url()}")
        page = await client.get_url(page.next_url(), model=page_model)
        yield page


async def iter_offset_pages(
    client,
    path: str,
    item_model: Any,
    limit: int = DEFAULT_LIMIT,
    params: Optional[Dict[str, Any]] = None,
) -> AsyncIterator[OffsetPage]:
    """Yield every Server/DC page starting at ``path``

    Args:
        client: BitbucketClient for a Server/DC host
        path: API path of the collection
        item_model: Type each value is decoded as
        limit: Page size requested from the server
        params: Extra query parameters sent with every request

    Raises:
        ResponseDecodeError: If ``nextPageStart`` does not move past ``start``
    """
    page_model = OffsetPage[item_model]
    query = dict(params or {})
    query["limit"] = limit
    start = query.get("start", 0)
    page = await client.get(path, model=page_model, params=query)
    yield page
    while page.has_next():
        next_start = page.next_start()
        if next_start <= start:
            raise ResponseDecodeError(f"nextPageStart {next_start} does not advance past start {start}")
        start = query["start"] = next_start
        logger.debug(f"Requesting {path} from start={query['start']}")
        page = await client.get(path, model=page_model, params=query)
        yield page


async def collect_all(pages: AsyncIterator) -> List:
    """Flatten a page iterator into one list of values"""
    return [item async for page in pages for item in page.values]
