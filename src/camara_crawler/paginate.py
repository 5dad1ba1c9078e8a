from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional

from pymongo import ASCENDING
from pymongo.collection import Collection

from .models import SourceRecord

PageFetch = Callable[[int, int], Awaitable[List[SourceRecord]]]


@dataclass(frozen=True)
class Page:
    number: int
    records: List[SourceRecord]


class Paginator:
    def __init__(self, fetch_page: PageFetch, page_size: int = 20):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.fetch_page = fetch_page
        self.page_size = page_size

    async def next_page(self, page_number: int) -> List[SourceRecord]:
        if page_number < 1:
            raise ValueError("page numbers start at 1")
        return await self.fetch_page(page_number, self.page_size)

    async def pages(self, start_page: int = 1) -> AsyncIterator[Page]:
        number = start_page
        while True:
            records = await self.next_page(number)
            if not records:
                return
            yield Page(number=number, records=records)
            number += 1


# ------------------------- page sources -------------------------

def api_page_source(
    fetch: Callable[[int, int], Awaitable[List[Dict[str, Any]]]],
    to_record: Callable[[Dict[str, Any]], SourceRecord],
) -> PageFetch:
    async def fetch_page(page: int, size: int) -> List[SourceRecord]:
        rows = await fetch(page, size)
        return [to_record(row) for row in rows]

    return fetch_page


def store_page_source(
    col: Collection,
    key_field: str,
    to_record: Callable[[Dict[str, Any]], SourceRecord],
    query: Optional[Mapping[str, Any]] = None,
    projection: Optional[Mapping[str, Any]] = None,
) -> PageFetch:
    # page n+1 starts after page n's last key; skip/limit only without one
    last_keys: Dict[int, Any] = {}

    async def fetch_page(page: int, size: int) -> List[SourceRecord]:
        filt = dict(query or {})
        skip = 0
        if page == 1:
            last_keys.clear()
        elif page - 1 in last_keys:
            filt[key_field] = {"$gt": last_keys[page - 1]}
        else:
            skip = (page - 1) * size

        docs = list(col.find(
            filt,
            projection=dict(projection) if projection else None,
            sort=[(key_field, ASCENDING)],
            skip=skip,
            limit=size,
        ))
        if docs and docs[-1].get(key_field) is not None:
            last_keys[page] = docs[-1][key_field]
        return [to_record(doc) for doc in docs]

    return fetch_page
