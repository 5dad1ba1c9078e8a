import asyncio
import logging
import traceback
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional, Tuple

from .api import CamaraApi
from .detect import ChangeDetector
from .models import SinkPlan, SourceRecord, utcnow
from .paginate import PageFetch, Paginator
from .sink import UpsertSink

logger = logging.getLogger(__name__)


class ResourceCrawler(ABC):
    # per record: fetch_details -> remote_version -> (change check) -> enrich -> transform
    name: str = "base"
    entity: str = ""
    marker_field: str = "remote_version"

    @abstractmethod
    def page_source(self, api: CamaraApi) -> PageFetch:  # pragma: no cover - interface
        ...

    async def fetch_details(self, api: CamaraApi, record: SourceRecord) -> Dict[str, Any]:
        return {}

    def remote_version(self, record: SourceRecord, details: Dict[str, Any]) -> Optional[str]:
        return record.remote_version

    async def enrich(self, api: CamaraApi, record: SourceRecord, details: Dict[str, Any]) -> Dict[str, Any]:
        return details

    @abstractmethod
    def transform(self, record: SourceRecord, details: Dict[str, Any]) -> SinkPlan:  # pragma: no cover - interface
        ...


@dataclass
class CrawlState:
    running: bool = False
    processed_count: int = 0
    unchanged_count: int = 0
    failed_count: int = 0
    page: int = 0
    last_error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass(frozen=True)
class CrawlStatus:
    resource: str
    running: bool
    processed: int
    unchanged: int
    failed: int
    page: int
    last_error: Optional[str]
    started_at: Optional[datetime]
    finished_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        for k in ("started_at", "finished_at"):
            if d[k] is not None:
                d[k] = d[k].isoformat()
        return d


class CrawlController:
    """
    Run/stop state machine for one resource type.

    Idle -> Running -> Idle (pagination exhausted or page failure)
    Idle -> Running -> Stopping -> Idle (stop requested)

    Cancellation is cooperative: the stop event is checked before every
    record and before every page, never in the middle of a network call.
    """

    def __init__(
        self,
        crawler: ResourceCrawler,
        sink: UpsertSink,
        open_api: Callable[[], AsyncContextManager[CamaraApi]],
        page_size: int = 20,
        detector: Optional[ChangeDetector] = None,
    ):
        self.crawler = crawler
        self.sink = sink
        self.open_api = open_api
        self.page_size = page_size
        self.detector = detector or ChangeDetector(sink, crawler.entity, crawler.marker_field)

        self._state = CrawlState()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return self.crawler.name

    @property
    def running(self) -> bool:
        return self._state.running

    @property
    def stopping(self) -> bool:
        return self._state.running and self._stop_event.is_set()

    def status(self) -> CrawlStatus:
        st = self._state
        return CrawlStatus(
            resource=self.name,
            running=st.running,
            processed=st.processed_count,
            unchanged=st.unchanged_count,
            failed=st.failed_count,
            page=st.page,
            last_error=st.last_error,
            started_at=st.started_at,
            finished_at=st.finished_at,
        )

    # ------------------------- control -------------------------

    def start(self) -> bool:
        if self._state.running:
            return False

        self._state = CrawlState(running=True, started_at=utcnow())
        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"crawl-{self.name}")
        logger.info(f"CRAWL_START: resource={self.name}")
        return True

    async def stop(self) -> bool:
        if not self.request_stop():
            return False
        await asyncio.shield(self._task)
        return True

    def request_stop(self) -> bool:
        # no await: also called from signal handlers
        if not self._state.running or self._task is None:
            return False
        if not self._stop_event.is_set():
            self._stop_event.set()
            logger.info(f"STOP requested: resource={self.name}")
        return True

    async def wait(self) -> CrawlStatus:
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.status()

    async def run(self) -> CrawlStatus:
        self.start()
        return await self.wait()

    # ------------------------- loop -------------------------

    def _stopped(self) -> bool:
        return self._stop_event.is_set()

    async def _run(self) -> None:
        st = self._state
        try:
            async with self.open_api() as api:
                paginator = Paginator(self.crawler.page_source(api), self.page_size)

                async with aclosing(paginator.pages()) as pages:
                    async for page in pages:
                        st.page = page.number
                        logger.info(f"PAGE: resource={self.name} page={page.number} records={len(page.records)}")

                        for record in page.records:
                            if self._stopped():
                                break
                            await self._process(api, record)

                        if self._stopped():
                            break

            if self._stopped():
                logger.info(f"CRAWL_STOPPED: resource={self.name} page={st.page} processed={st.processed_count}")
            else:
                logger.info(
                    f"CRAWL_DONE: resource={self.name} pages={st.page} processed={st.processed_count} "
                    f"unchanged={st.unchanged_count} failed={st.failed_count}"
                )

        except Exception as e:
            st.last_error = f"page {st.page + 1}: {e}"
            logger.error(f"PAGE_FAIL: resource={self.name} page={st.page + 1} err={e}")
            logger.error(traceback.format_exc())

        finally:
            st.running = False
            st.finished_at = utcnow()

    async def _process(self, api: CamaraApi, record: SourceRecord) -> None:
        st = self._state
        key = record.remote_id

        if key is None:
            st.processed_count += 1
            st.failed_count += 1
            logger.error(f"RECORD_FAIL: resource={self.name} err=listing row without id payload={record.payload}")
            return

        try:
            details = await self.crawler.fetch_details(api, record)
            record.remote_version = self.crawler.remote_version(record, details)

            if not self.detector.needs_reprocessing(key, record.remote_version):
                st.unchanged_count += 1
                logger.info(f"UNCHANGED: resource={self.name} id={key} version={record.remote_version}")
                return

            details = await self.crawler.enrich(api, record, details)
            plan = self.crawler.transform(record, details)
            complete = self._write(plan)

        except Exception as e:
            st.processed_count += 1
            st.failed_count += 1
            logger.error(f"RECORD_FAIL: resource={self.name} id={key} err={e}")
            logger.debug(traceback.format_exc())
            return

        st.processed_count += 1
        if complete:
            logger.info(f"SAVED: resource={self.name} id={key} related={len(plan.related)}")
        else:
            st.failed_count += 1
            logger.warning(f"PARTIAL: resource={self.name} id={key} marker withheld, will be reprocessed")

    def _write(self, plan: SinkPlan) -> bool:
        # related first, primary last; an incomplete record keeps no change marker
        grouped: Dict[str, List[Tuple[Any, Dict[str, Any]]]] = {}
        for w in plan.related:
            grouped.setdefault(w.entity, []).append((w.key, w.fields))

        complete = plan.complete
        for entity, items in grouped.items():
            result = self.sink.bulk_upsert(entity, items)
            if not result.ok:
                complete = False

        fields = dict(plan.primary.fields)
        if not complete:
            for f in plan.marker_fields:
                fields.pop(f, None)

        self.sink.upsert(plan.primary.entity, plan.primary.key, fields)
        return complete
