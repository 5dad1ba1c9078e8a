import asyncio
import logging
from functools import partial
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional, Tuple

from pymongo import MongoClient
from pymongo.database import Database

from .api import CamaraApi, open_api
from .config import AppCfg
from .controller import CrawlController, CrawlStatus
from .resources import build_crawler
from .sink import UpsertSink, default_entities

logger = logging.getLogger(__name__)


def mongo_database(cfg: AppCfg) -> Tuple[MongoClient, Database]:
    client = MongoClient(cfg.db.uri(), tz_aware=True)
    return client, client[cfg.db.database()]


class CrawlerApp:
    def __init__(
        self,
        cfg: AppCfg,
        db: Database,
        api_factory: Optional[Callable[[], AsyncContextManager[CamaraApi]]] = None,
    ):
        self.cfg = cfg
        self.sink = UpsertSink(db, default_entities(cfg.db.collections))
        api_factory = api_factory or partial(open_api, cfg.http)

        self.controllers: Dict[str, CrawlController] = {}
        for name in cfg.enabled_resources():
            rcfg = cfg.resource(name)
            crawler = build_crawler(rcfg, self.sink)
            self.controllers[name] = CrawlController(crawler, self.sink, api_factory, page_size=rcfg.page_size)

    def setup(self) -> None:
        self.sink.ensure_indexes()

    def controller(self, name: str) -> Optional[CrawlController]:
        return self.controllers.get(name)

    def statuses(self) -> List[CrawlStatus]:
        return [c.status() for c in self.controllers.values()]

    async def stop_all(self) -> None:
        running = [c for c in self.controllers.values() if c.running]
        if running:
            await asyncio.gather(*(c.stop() for c in running))

    def summary(self) -> Dict[str, Any]:
        return {s.resource: s.to_dict() for s in self.statuses()}
