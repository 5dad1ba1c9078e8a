import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp
from bs4 import BeautifulSoup, Tag

from .errors import FatalFormatError, TransientNetworkError
from .models import DetailResponse, ListingResponse

ACCEPT = "application/json, application/xml;q=0.9, text/xml;q=0.8"

Query = Sequence[Tuple[str, str]]


# ------------------------- body normalization -------------------------

def _element_to_obj(tag: Tag) -> Any:
    children = [c for c in tag.children if isinstance(c, Tag)]
    attrs = {k: v for k, v in tag.attrs.items()}

    if not children:
        text = tag.get_text(strip=True)
        if not attrs:
            return text if text else None
        if text:
            attrs["_"] = text
        return attrs

    obj: Dict[str, Any] = dict(attrs)
    for child in children:
        name = child.name
        value = _element_to_obj(child)
        if name not in obj:
            obj[name] = value
        elif isinstance(obj[name], list):
            obj[name].append(value)
        else:
            obj[name] = [obj[name], value]
    return obj


def parse_xml(body: bytes) -> Dict[str, Any]:
    soup = BeautifulSoup(body, "xml")
    root = next((c for c in soup.children if isinstance(c, Tag)), None)
    if root is None:
        raise FatalFormatError("Empty or malformed XML document")
    obj = _element_to_obj(root)
    if not isinstance(obj, dict):
        raise FatalFormatError(f"XML root <{root.name}> carries no structure")
    return obj


def parse_body(content_type: str, body: bytes) -> Tuple[str, Dict[str, Any]]:
    """
    Returns: (source_format, document) for a JSON or XML body.
    """
    ctype = (content_type or "").split(";")[0].strip().lower()

    if ctype == "application/json" or ctype.endswith("+json"):
        try:
            doc = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise FatalFormatError(f"Malformed JSON body: {e}") from e
        if not isinstance(doc, dict):
            raise FatalFormatError(f"JSON root must be an object, got {type(doc).__name__}")
        return "json", doc

    if ctype in ("application/xml", "text/xml") or ctype.endswith("+xml"):
        return "xml", parse_xml(body)

    raise FatalFormatError(f"Unsupported content type: {content_type or '<none>'}")


def _links(doc: Dict[str, Any]) -> List[Dict[str, Any]]:
    links = doc.get("links")
    if isinstance(links, dict):
        # XML: <links><link>...</link></links>
        links = links.get("link", [])
    if isinstance(links, dict):
        links = [links]
    if not isinstance(links, list):
        return []
    return [x for x in links if isinstance(x, dict)]


def to_listing(source_format: str, doc: Dict[str, Any]) -> ListingResponse:
    if "dados" not in doc:
        raise FatalFormatError("Listing body has no 'dados' field")
    dados = doc["dados"]

    if dados is None or dados == "":
        items: List[Any] = []
    elif isinstance(dados, list):
        items = dados
    elif isinstance(dados, dict) and len(dados) == 1:
        # XML wraps repeated rows: <dados><votacao/>...</dados>
        (inner,) = dados.values()
        if inner is None:
            items = []
        elif isinstance(inner, list):
            items = inner
        elif isinstance(inner, dict):
            items = [inner]
        else:
            raise FatalFormatError("Listing 'dados' wraps a scalar")
    else:
        raise FatalFormatError(f"Expected a listing, got 'dados' of type {type(dados).__name__}")

    if not all(isinstance(x, dict) for x in items):
        raise FatalFormatError("Listing rows must be objects")
    return ListingResponse(items=items, links=_links(doc), source_format=source_format)


def to_detail(source_format: str, doc: Dict[str, Any]) -> DetailResponse:
    dados = doc.get("dados")
    if not isinstance(dados, dict):
        raise FatalFormatError(f"Expected a detail object, got 'dados' of type {type(dados).__name__}")
    return DetailResponse(item=dados, links=_links(doc), source_format=source_format)


# ------------------------- fetcher -------------------------

class Fetcher:
    def __init__(self, session: aiohttp.ClientSession, timeout_sec: float = 60.0, user_agent: Optional[str] = None):
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=float(timeout_sec))
        self.headers = {"Accept": ACCEPT}
        if user_agent:
            self.headers["User-Agent"] = user_agent

    async def fetch(self, url: str, params: Optional[Query] = None) -> Tuple[str, Dict[str, Any]]:
        try:
            async with self.session.get(url, params=params, headers=self.headers, timeout=self.timeout) as resp:
                status = resp.status
                ctype = resp.headers.get("Content-Type", "")
                final_url = str(resp.url)
                body = await resp.read()
        except asyncio.TimeoutError as e:
            raise TransientNetworkError("Request timed out", url=url) from e
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError) as e:
            raise TransientNetworkError(f"Connection failed: {e!r}", url=url) from e
        except aiohttp.ClientError as e:
            raise FatalFormatError(f"Request failed: {e!r}", url=url) from e

        if status == 429 or status >= 500:
            raise TransientNetworkError("Upstream unavailable", url=final_url, status=status)
        if status >= 400:
            raise FatalFormatError("Upstream rejected request", url=final_url, status=status)

        try:
            return parse_body(ctype, body)
        except FatalFormatError as e:
            e.url = final_url
            e.status = status
            raise

    async def fetch_listing(self, url: str, params: Optional[Query] = None) -> ListingResponse:
        fmt, doc = await self.fetch(url, params)
        try:
            return to_listing(fmt, doc)
        except FatalFormatError as e:
            e.url = url
            raise

    async def fetch_detail(self, url: str, params: Optional[Query] = None) -> DetailResponse:
        fmt, doc = await self.fetch(url, params)
        try:
            return to_detail(fmt, doc)
        except FatalFormatError as e:
            e.url = url
            raise
