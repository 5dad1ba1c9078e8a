import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple

import aiohttp

from .config import HttpCfg
from .fetch import Fetcher
from .models import ApiResponse
from .retry import RetryPolicy, Sleep, with_retry

logger = logging.getLogger(__name__)


def _note_format(resp: ApiResponse, url: str) -> None:
    if resp.source_format != "json":
        logger.debug(f"BODY_FORMAT: format={resp.source_format} links={len(resp.links)} url={url}")


def query_pairs(params: Optional[Mapping[str, Any]]) -> List[Tuple[str, str]]:
    # {"siglaTipo": ["PEC", "PL"]} -> siglaTipo=PEC&siglaTipo=PL
    pairs: List[Tuple[str, str]] = []
    for k, v in (params or {}).items():
        if v is None:
            continue
        values = v if isinstance(v, (list, tuple)) else [v]
        for x in values:
            pairs.append((str(k), str(x)))
    return pairs


class CamaraApi:
    def __init__(self, fetcher: Fetcher, base_url: str, policy: Optional[RetryPolicy] = None, sleep: Sleep = asyncio.sleep):
        self.fetcher = fetcher
        self.base_url = base_url.rstrip("/")
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def listing(self, path: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        url = self.url(path)
        q = query_pairs(params)
        resp = await with_retry(lambda: self.fetcher.fetch_listing(url, q), self.policy, sleep=self.sleep, label=url)
        _note_format(resp, url)
        return resp.items

    async def detail(self, path: str) -> Dict[str, Any]:
        url = self.url(path)
        resp = await with_retry(lambda: self.fetcher.fetch_detail(url), self.policy, sleep=self.sleep, label=url)
        _note_format(resp, url)
        return resp.item

    async def page(self, path: str, page: int, page_size: int, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        q = dict(params or {})
        q["itens"] = page_size
        q["pagina"] = page
        return await self.listing(path, q)

    # ---- deputies ----

    async def deputies_page(self, page: int, page_size: int, params=None) -> List[Dict[str, Any]]:
        return await self.page("deputados", page, page_size, params)

    async def deputy(self, deputy_id: Any) -> Dict[str, Any]:
        return await self.detail(f"deputados/{deputy_id}")

    # ---- propositions ----

    async def propositions_page(self, page: int, page_size: int, params=None) -> List[Dict[str, Any]]:
        return await self.page("proposicoes", page, page_size, params)

    async def proposition(self, proposition_id: Any) -> Dict[str, Any]:
        return await self.detail(f"proposicoes/{proposition_id}")

    async def proposition_authors(self, proposition_id: Any) -> List[Dict[str, Any]]:
        return await self.listing(f"proposicoes/{proposition_id}/autores")

    async def proposition_votings(self, proposition_id: Any) -> List[Dict[str, Any]]:
        return await self.listing(f"proposicoes/{proposition_id}/votacoes")

    # ---- votings ----

    async def voting_votes(self, voting_id: Any) -> List[Dict[str, Any]]:
        return await self.listing(f"votacoes/{voting_id}/votos")


@asynccontextmanager
async def open_api(http: HttpCfg) -> AsyncIterator[CamaraApi]:
    timeout = aiohttp.ClientTimeout(total=None)
    connector = aiohttp.TCPConnector(limit=10, ttl_dns_cache=300)

    async with aiohttp.ClientSession(timeout=timeout, connector=connector) as session:
        fetcher = Fetcher(session, timeout_sec=http.timeout_sec, user_agent=http.user_agent)
        yield CamaraApi(fetcher, http.base_url, RetryPolicy.from_cfg(http.retries))
